def _world(client, title="Arton"):
    r = client.post("/worlds", json={"title": title, "description": "Continente"})
    assert r.status_code == 201, r.text
    return r.json()["id"]


def _campaign(client, world_id, name="Saga"):
    r = client.post(f"/worlds/{world_id}/campaigns", json={"name": name})
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_world_campaign_character_flow(client):
    world_id = _world(client)
    r = client.get(f"/worlds/{world_id}")
    assert r.status_code == 200
    assert r.json()["title"] == "Arton"

    campaign = _campaign(client, world_id)
    assert campaign["world_id"] == world_id
    assert campaign["ruleset_id"] == "tormenta20"
    assert len(campaign["room_code"]) == 6

    r = client.post(
        f"/campaigns/{campaign['id']}/characters",
        json={"name": "Aria", "class_name": "Arcanista", "sheet": {"des": 14, "pvMax": 18}},
    )
    assert r.status_code == 201, r.text
    assert r.json()["class_name"] == "Arcanista"
    assert r.json()["ancestry"] == "Humano"

    r = client.get(f"/campaigns/{campaign['id']}/characters")
    assert [c["name"] for c in r.json()] == ["Aria"]

    r = client.get(f"/worlds/{world_id}/events")
    assert [e["type"] for e in r.json()] == ["WORLD_CREATED", "CAMPAIGN_CREATED", "CHARACTER_CREATED"]

    r = client.get(f"/worlds/{world_id}/events", params={"type": "CAMPAIGN_CREATED"})
    assert len(r.json()) == 1
    assert r.json()[0]["payload"]["roomCode"] == campaign["room_code"]


def test_rebuild_endpoint_restores_corrupted_world(client):
    world_id = _world(client)
    _campaign(client, world_id)

    r = client.post(f"/worlds/{world_id}/rebuild", json={"corrupt": True})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["title"] == "Arton"
    assert body["events_applied"] == 2

    r = client.post(f"/worlds/{world_id}/rebuild")
    assert r.status_code == 200


def test_not_found_mapping(client):
    assert client.get("/worlds/nope").status_code == 404
    assert client.get("/campaigns/nope").status_code == 404
    assert client.post("/worlds/nope/campaigns", json={"name": "x"}).status_code == 404

    r = client.get("/campaigns/nope/combat")
    assert r.status_code == 404
    assert "Campaign not found" in r.json()["detail"]


def test_request_validation(client):
    assert client.post("/worlds", json={"title": ""}).status_code == 422
    assert client.post("/worlds", json={"title": "x", "owner": "me"}).status_code == 422


def test_combat_flow(client):
    world_id = _world(client)
    campaign_id = _campaign(client, world_id)["id"]
    client.post(
        f"/campaigns/{campaign_id}/characters",
        json={"name": "Aria", "sheet": {"des": 14, "pvMax": 18, "pmMax": 4}},
    )

    r = client.get(f"/campaigns/{campaign_id}/combat")
    assert r.status_code == 200
    assert r.json() is None

    r = client.post(f"/campaigns/{campaign_id}/combat")
    assert r.status_code == 200, r.text
    combat = r.json()
    assert combat["is_active"] is True
    assert combat["round"] == 1

    r = client.post(
        f"/campaigns/{campaign_id}/combat/initiative",
        json={"extras": [{"name": "Goblin", "kind": "MONSTER", "hpMax": 7, "defense": 12}]},
    )
    assert r.status_code == 200, r.text
    combatants = r.json()["combatants"]
    assert sorted(c["name"] for c in combatants) == ["Aria", "Goblin"]
    by_name = {c["name"]: c for c in combatants}
    assert by_name["Goblin"]["hp_max"] == 7
    inits = [c["initiative"] for c in combatants]
    assert inits == sorted(inits, reverse=True)

    r = client.post(f"/campaigns/{campaign_id}/combat/turn", json={"direction": "next"})
    assert r.status_code == 200
    assert r.json()["turn_index"] == 1

    r = client.post(f"/campaigns/{campaign_id}/combat/turn", json={"direction": "prev"})
    assert r.json()["turn_index"] == 0
    assert r.json()["round"] == 1

    r = client.post(
        f"/campaigns/{campaign_id}/combat/action",
        json={
            "kind": "ATTACK",
            "actorId": by_name["Aria"]["id"],
            "targetId": by_name["Goblin"]["id"],
            "useSheet": False,
            "damageFormula": "1d4",
        },
    )
    assert r.status_code == 200, r.text
    action = r.json()
    assert action["outcome"]["hit"] is True
    assert 0 <= action["target"]["hp_current"] <= 6

    r = client.post(
        f"/campaigns/{campaign_id}/combat/apply",
        json={"target_id": by_name["Goblin"]["id"], "delta_hp": -100},
    )
    assert r.status_code == 200
    assert r.json()["hp_current"] == 0

    r = client.post(
        f"/combat/{combat['id']}/conditions/apply",
        json={"target_combatant_id": by_name["Aria"]["id"], "condition_key": "abalado"},
    )
    assert r.status_code == 201, r.text

    r = client.post(
        f"/combat/{combat['id']}/conditions/remove",
        json={"target_combatant_id": by_name["Aria"]["id"]},
    )
    assert r.status_code == 200
    assert r.json() == {"removed": 1}

    r = client.delete(f"/campaigns/{campaign_id}/combat")
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    r = client.post(f"/campaigns/{campaign_id}/combat/turn")
    assert r.status_code == 400
    assert "not active" in r.json()["detail"]

    r = client.post(f"/worlds/{world_id}/rebuild", json={"corrupt": True})
    assert r.status_code == 200, r.text
    r = client.get(f"/campaigns/{campaign_id}/combat")
    assert r.json()["is_active"] is False
    hp = {c["name"]: c["hp_current"] for c in r.json()["combatants"]}
    assert hp["Goblin"] == 0


def test_domain_validation_maps_to_400(client):
    world_id = _world(client)
    campaign_id = _campaign(client, world_id)["id"]
    client.post(f"/campaigns/{campaign_id}/combat")

    r = client.post(
        f"/campaigns/{campaign_id}/combat/action",
        json={"kind": "DANCE", "actorId": "a", "targetId": "b"},
    )
    assert r.status_code == 400

    r = client.post(
        f"/campaigns/{campaign_id}/combat/action",
        json={"kind": "ATTACK", "actorId": "a", "targetId": "b"},
    )
    assert r.status_code == 404


def test_end_combat_without_combat_returns_null(client):
    world_id = _world(client)
    campaign_id = _campaign(client, world_id)["id"]
    r = client.delete(f"/campaigns/{campaign_id}/combat")
    assert r.status_code == 200
    assert r.json() is None


def test_add_combatant_to_running_combat(client):
    world_id = _world(client)
    campaign_id = _campaign(client, world_id)["id"]
    client.post(f"/campaigns/{campaign_id}/combat")
    client.post(
        f"/campaigns/{campaign_id}/combat/initiative",
        json={"extras": [{"name": "Goblin", "kind": "MONSTER"}]},
    )

    r = client.post(
        f"/campaigns/{campaign_id}/combat/combatants",
        json={"name": "Ogro", "kind": "MONSTER", "hpMax": 30, "damageFormula": "2d6"},
    )
    assert r.status_code == 201, r.text
    ogro = r.json()
    assert ogro["hp_current"] == 30
    assert ogro["order_index"] == 1

    names = [c["name"] for c in client.get(f"/campaigns/{campaign_id}/combat").json()["combatants"]]
    assert sorted(names) == ["Goblin", "Ogro"]

    r = client.post("/campaigns/nope/combat/combatants", json={"name": "Ogro"})
    assert r.status_code == 404


def test_update_character_sheet_fills_defaults(client):
    world_id = _world(client)
    campaign_id = _campaign(client, world_id)["id"]
    r = client.post(
        f"/campaigns/{campaign_id}/characters",
        json={"name": "Aria", "sheet": {"des": 14, "notes": "ruiva"}},
    )
    character_id = r.json()["id"]

    r = client.put(f"/characters/{character_id}/sheet", json={"sheet": {"pvMax": 18, "for": "forte"}})
    assert r.status_code == 200, r.text
    sheet = r.json()["sheet_json"]
    assert sheet["des"] == 14
    assert sheet["pvMax"] == 18
    assert sheet["for"] == 10
    assert sheet["notes"] == "ruiva"
    assert sheet["sheetRulesetId"] == "tormenta20"
    assert sheet["damageFormula"] == "1d6"

    types = [e["type"] for e in client.get(f"/worlds/{world_id}/events").json()]
    assert types[-1] == "CHARACTER_UPDATED"

    assert client.put("/characters/nope/sheet", json={"sheet": {}}).status_code == 404

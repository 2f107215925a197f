from __future__ import annotations

from fastapi import Request

from chronicle.core.rules.registry import RulesetRegistry


def get_registry(request: Request) -> RulesetRegistry:
    return request.app.state.registry

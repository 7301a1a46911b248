"""
OpenAPI customization for the coin service
"""
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from typing import Dict, Any

def _error_ref(description: str) -> Dict[str, Any]:
    return {
        "description": description,
        "content": {
            "application/json": {
                "schema": {"$ref": "#/components/schemas/ErrorResponse"}
            }
        }
    }

def create_custom_openapi(app: FastAPI, title: str, version: str, description: str) -> Dict[str, Any]:
    """OpenAPI schema with the standard error envelope attached to every operation"""

    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=title,
        version=version,
        description=description,
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    components["securitySchemes"] = {
        "internalBearer": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Internal JWT (audience coin-ledger) for balance adjustments"
        }
    }

    components.setdefault("schemas", {})["ErrorResponse"] = {
        "type": "object",
        "required": ["success", "error", "timestamp"],
        "properties": {
            "success": {"type": "boolean", "example": False},
            "error": {
                "type": "object",
                "required": ["code", "message"],
                "properties": {
                    "code": {"type": "string", "example": "INSUFFICIENT_BALANCE"},
                    "message": {"type": "string", "example": "Insufficient coins. Required: 6, available: 4."},
                    "field": {"type": "string"},
                    "context": {"type": "object"}
                }
            },
            "timestamp": {"type": "number", "example": 1699123456.789},
            "trace_id": {"type": "string"},
            "request_id": {"type": "string"}
        }
    }

    standard_responses = {
        "400": _error_ref("Invalid input or profile reference"),
        "402": _error_ref("Insufficient coin balance"),
        "404": _error_ref("Profile or order not found"),
        "429": _error_ref("Rate limit exceeded"),
        "502": _error_ref("Social-graph service failure"),
    }

    for path_item in openapi_schema["paths"].values():
        for operation in path_item.values():
            if isinstance(operation, dict) and "responses" in operation:
                operation["responses"].update(standard_responses)

    openapi_schema["tags"] = [
        {"name": "Profiles", "description": "Resolve social-graph profiles"},
        {"name": "Users", "description": "User records and coin stats"},
        {"name": "Orders", "description": "Spend coins on follower orders"},
        {"name": "Follows", "description": "Earn coins by following queued targets"},
        {"name": "Referrals", "description": "Referral bonuses"},
        {"name": "Administration", "description": "Internal balance adjustments"},
        {"name": "Health", "description": "Service health"},
    ]

    app.openapi_schema = openapi_schema
    return app.openapi_schema

ORDER_DOCS = """
## Order Followers

Spend coins to queue a follower order for a Farcaster profile.

- Cost is `quantity x 2` coins, debited in the same transaction that creates the order.
- The balance is re-checked inside the transaction; an order never overdraws.
- Pending orders are served to followers oldest first.
"""

FOLLOW_DOCS = """
## Follow and Earn

Follow the target of a pending order and earn 1 coin.

- Each follower is credited at most once per target; repeats return `coins_earned = 0`.
- "Already following" on Farcaster counts as a successful follow.
- Self-follows are rejected before any call to Farcaster.
"""

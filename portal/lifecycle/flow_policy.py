from __future__ import annotations

from typing import Dict, List


# entity -> status -> {"transitions": {action: next_status | None}, "primary_action": action}
# A next_status of None marks an action that is allowed in the status without changing it.
FLOW_POLICY: Dict[str, Dict[str, Dict[str, object]]] = {
    "vendor": {
        "Pending": {
            "transitions": {"approve": "Active", "reject": "Suspended"},
            "primary_action": "approve",
        },
        "Active": {
            "transitions": {"suspend": "Suspended"},
            "primary_action": "suspend",
        },
        "Suspended": {
            "transitions": {"reactivate": "Active"},
            "primary_action": "reactivate",
        },
    },
    "tender": {
        "draft": {
            "transitions": {"edit_tender": None, "publish": "published", "cancel": "cancelled"},
            "primary_action": "publish",
        },
        "published": {
            "transitions": {
                "submit_bid": None,
                "unpublish": "draft",
                "close_bidding": "under_review",
                "cancel": "cancelled",
            },
            "primary_action": "close_bidding",
        },
        "under_review": {
            "transitions": {"evaluate_bid": None, "award": "awarded", "cancel": "cancelled"},
            "primary_action": "award",
        },
        "awarded": {
            "transitions": {"create_payment": None},
            "primary_action": "create_payment",
        },
        "cancelled": {
            "transitions": {"reactivate": "draft"},
            "primary_action": "reactivate",
        },
    },
    "bid": {
        "submitted": {
            "transitions": {"review": "under_review", "accept": "accepted", "reject": "rejected"},
            "primary_action": "review",
        },
        "under_review": {
            "transitions": {"accept": "accepted", "reject": "rejected"},
            "primary_action": "accept",
        },
        "accepted": {"transitions": {}, "primary_action": None},
        "rejected": {"transitions": {}, "primary_action": None},
    },
    "payment": {
        "pending": {
            "transitions": {"submit_info": "processing", "pay_via_qr": "processing", "fail": "failed"},
            "primary_action": "submit_info",
        },
        "processing": {
            "transitions": {"complete": "completed", "fail": "failed"},
            "primary_action": "complete",
        },
        "completed": {"transitions": {}, "primary_action": None},
        "failed": {"transitions": {}, "primary_action": None},
    },
}


# Transitions that only the dedicated operation may perform (award carries the bid side effect).
RESTRICTED_STATUS_ACTIONS = {("tender", "award")}


def _fallback_policy() -> Dict[str, object]:
    return {"transitions": {}, "primary_action": None}


def status_policy(entity: str, status: str | None) -> Dict[str, object]:
    if not status:
        return _fallback_policy()
    return FLOW_POLICY.get(entity, {}).get(str(status), _fallback_policy())


def _transitions(entity: str, status: str | None) -> Dict[str, str | None]:
    transitions = status_policy(entity, status).get("transitions") or {}
    if not isinstance(transitions, dict):
        return {}
    return transitions


def allowed_actions(entity: str, status: str | None) -> List[str]:
    return [str(action) for action in _transitions(entity, status)]


def primary_action(entity: str, status: str | None) -> str | None:
    action = status_policy(entity, status).get("primary_action")
    if not action:
        return None
    return str(action)


def action_allowed(entity: str, status: str | None, action: str) -> bool:
    if not action:
        return False
    return action in _transitions(entity, status)


def next_status(entity: str, status: str | None, action: str) -> str | None:
    """Target status for ``action``; the current status for in-place actions."""
    transitions = _transitions(entity, status)
    if action not in transitions:
        return None
    target = transitions[action]
    return status if target is None else target


def action_for_transition(entity: str, status: str | None, target: str | None) -> str | None:
    if not target or target == status:
        return None
    for action, candidate in _transitions(entity, status).items():
        if candidate == target:
            return action
    return None


def is_terminal(entity: str, status: str | None) -> bool:
    return not any(target for target in _transitions(entity, status).values())


def flow_meta(entity: str, status: str | None) -> Dict[str, object]:
    return {
        "entity": entity,
        "status": status,
        "allowed_actions": allowed_actions(entity, status),
        "primary_action": primary_action(entity, status),
    }

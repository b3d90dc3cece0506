import unittest

from portal.lifecycle.flow_policy import (
    FLOW_POLICY,
    action_allowed,
    action_for_transition,
    allowed_actions,
    flow_meta,
    is_terminal,
    next_status,
)
from portal.ui_strings import status_keys_for_group


class FlowPolicyTest(unittest.TestCase):
    def test_every_known_status_has_a_policy(self) -> None:
        for entity, status_map in FLOW_POLICY.items():
            self.assertEqual(set(status_map), set(status_keys_for_group(entity)), entity)

    def test_primary_action_is_in_allowed_actions(self) -> None:
        for entity, status_map in FLOW_POLICY.items():
            for status, policy in status_map.items():
                primary = policy.get("primary_action")
                if primary:
                    self.assertIn(primary, allowed_actions(entity, status), f"{entity}:{status}")

    def test_transition_targets_are_known_statuses(self) -> None:
        for entity, status_map in FLOW_POLICY.items():
            known = set(status_keys_for_group(entity))
            for status, policy in status_map.items():
                for action, target in policy["transitions"].items():
                    if target is not None:
                        self.assertIn(target, known, f"{entity}:{status}:{action}")

    def test_tender_transitions(self) -> None:
        self.assertEqual(action_for_transition("tender", "draft", "published"), "publish")
        self.assertEqual(action_for_transition("tender", "published", "under_review"), "close_bidding")
        self.assertEqual(action_for_transition("tender", "cancelled", "draft"), "reactivate")
        self.assertIsNone(action_for_transition("tender", "draft", "awarded"))
        self.assertIsNone(action_for_transition("tender", "awarded", "cancelled"))
        self.assertIsNone(action_for_transition("tender", "draft", "draft"))

    def test_in_place_actions_keep_status(self) -> None:
        self.assertTrue(action_allowed("tender", "published", "submit_bid"))
        self.assertEqual(next_status("tender", "published", "submit_bid"), "published")
        self.assertFalse(action_allowed("tender", "under_review", "submit_bid"))

    def test_terminal_statuses(self) -> None:
        self.assertTrue(is_terminal("bid", "accepted"))
        self.assertTrue(is_terminal("payment", "completed"))
        self.assertTrue(is_terminal("payment", "failed"))
        self.assertTrue(is_terminal("tender", "awarded"))
        self.assertFalse(is_terminal("tender", "cancelled"))

    def test_payment_flow(self) -> None:
        self.assertEqual(next_status("payment", "pending", "pay_via_qr"), "processing")
        self.assertEqual(next_status("payment", "processing", "complete"), "completed")
        self.assertIsNone(next_status("payment", "pending", "complete"))

    def test_flow_meta_for_unknown_status(self) -> None:
        meta = flow_meta("tender", "archived")
        self.assertEqual(meta["allowed_actions"], [])
        self.assertIsNone(meta["primary_action"])


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Procurement Portal",
    "vendor": "Vendor",
    "tender": "Tender",
    "bid": "Bid",
    "award": "Award",
    "payment": "Payment",
    "notification": "Notification",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "vendor": [
        {"key": "Pending", "label": "Pending approval", "description": "Registered and waiting for an officer review."},
        {"key": "Active", "label": "Active", "description": "Approved and allowed to bid."},
        {"key": "Suspended", "label": "Suspended", "description": "Rejected or suspended by an officer."},
    ],
    "tender": [
        {"key": "draft", "label": "Draft", "description": "Being prepared, not visible to vendors."},
        {"key": "published", "label": "Published", "description": "Open for bids until the submission deadline."},
        {"key": "under_review", "label": "Under review", "description": "Bidding closed, bids being evaluated."},
        {"key": "awarded", "label": "Awarded", "description": "A winning bid was selected."},
        {"key": "cancelled", "label": "Cancelled", "description": "Closed without award."},
    ],
    "bid": [
        {"key": "submitted", "label": "Submitted", "description": "Received and waiting for evaluation."},
        {"key": "under_review", "label": "Under review", "description": "Technical score assigned."},
        {"key": "accepted", "label": "Accepted", "description": "Winning bid for the tender."},
        {"key": "rejected", "label": "Rejected", "description": "Not selected for the tender."},
    ],
    "payment": [
        {"key": "pending", "label": "Pending", "description": "Created for an award, waiting for the vendor."},
        {"key": "processing", "label": "Processing", "description": "Payment details submitted, awaiting verification."},
        {"key": "completed", "label": "Completed", "description": "Verified and paid out by finance."},
        {"key": "failed", "label": "Failed", "description": "Rejected during reconciliation."},
    ],
}


VENDOR_STATUS_NOTIFICATIONS: Dict[str, str] = {
    "Active": "Your vendor account has been approved! You can now access the system.",
    "Suspended": "Your vendor account has been suspended. Please contact support for more information.",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "vendor_registered": "Vendor registered. Your account is pending approval.",
        "vendor_approved": "Vendor approved successfully",
        "vendor_suspended": "Vendor suspended successfully",
        "vendor_reactivated": "Vendor reactivated successfully",
        "compliance_updated": "Compliance score updated successfully",
        "tender_saved": "Tender saved successfully",
        "tender_status_updated": "Tender status updated successfully",
        "tender_awarded": "Tender awarded successfully",
        "bid_submitted": "Bid submitted successfully",
        "bid_updated": "Bid status updated successfully",
        "payment_created": "Payment created successfully",
        "payment_submitted": "Payment processed successfully. Awaiting verification.",
        "payment_completed": "Payment marked as completed",
    },
    "error": {
        "action_invalid": "Invalid action for this operation.",
        "validation_error": "The information provided is invalid.",
        "not_found": "Record not found.",
        "state_changed": "The record changed state. Reload and try again.",
        "permission_denied": "You do not have permission to perform this action.",
        "denied_role_mismatch": "You do not have permission to perform this action.",
        "denied_state_mismatch": "This action is not allowed in the current status.",
        "denied_ownership_mismatch": "This record belongs to another account.",
        "denied_deadline_passed": "The submission deadline has passed.",
        "denied_mse_reserved": "This tender is reserved for MSE vendors.",
        "denied_vendor_not_active": "Your vendor account must be active to bid.",
        "denied_token_mismatch": "You are not authorized to view this payment.",
        "denied_auth_required": "Authentication required.",
        "auth_invalid_credentials": "Invalid credentials. Please try again.",
        "auth_missing_credentials": "Email and password are required.",
        "email_already_registered": "An account with this email already exists. Please use a different email or try logging in.",
        "upstream_unavailable": "Connection to the service failed. Please try again later.",
        "rate_limit_exceeded": "Too many requests. Please try again shortly.",
        "unexpected_error": "The operation could not be completed. Please try again shortly.",
        "amount_invalid": "Amount must be greater than zero.",
        "estimated_value_invalid": "Estimated value must be greater than zero.",
        "category_invalid": "Category must be goods, services or works.",
        "business_type_invalid": "Business type must be MSE or Large Enterprise.",
        "payment_method_invalid": "Payment method must be bank_transfer, check or credit_card.",
        "deadline_invalid": "Submission deadline must be a valid future date.",
        "title_required": "Title is required.",
        "description_required": "Description is required.",
        "name_required": "Name is required.",
        "email_required": "Email is required.",
        "reason_required": "A reason is required.",
        "transaction_id_required": "Transaction id is required.",
        "score_invalid": "Score must be between 0 and 100.",
        "compliance_type_invalid": "Compliance type must be positive, negative or neutral.",
        "status_invalid": "Status is invalid for this entity.",
        "evaluation_action_invalid": "Evaluation action must be review, accept or reject.",
        "no_changes": "No changes provided.",
        "document_not_found": "Document not found.",
        "vendor_not_found": "Vendor not found.",
        "vendor_already_registered": "A vendor profile already exists for this account or email.",
        "tender_not_found": "Tender not found.",
        "tender_locked": "Only draft tenders can be edited.",
        "bid_not_found": "Bid not found.",
        "bid_not_in_tender": "The bid does not belong to this tender.",
        "duplicate_bid": "You have already submitted a bid for this tender.",
        "tender_not_open": "This tender is not accepting bids in its current status.",
        "deadline_passed": "The submission deadline has passed.",
        "payment_not_found": "Payment not found.",
        "duplicate_payment": "A payment already exists for this award.",
        "award_required": "Payments can only be created for an awarded tender and its accepted bid.",
        "illegal_transition": "This status change is not allowed.",
        "field_required": "A required field is missing.",
        "documents_invalid": "Documents must be a list of entries with a name and a known type.",
        "bank_details_invalid": "Bank details must be an object with account name, account number, bank name or IFSC code.",
        "award_via_bid": "Award a tender by accepting one of its bids.",
        "tender_not_under_review": "Bids can only be evaluated once bidding is closed.",
        "notification_not_found": "Notification not found.",
        "date_invalid": "Date filter must be a valid ISO date.",
        "password_too_short": "Password must have at least 6 characters.",
    },
}


NOTIFICATION_TEMPLATES: Dict[str, str] = {
    "vendor_approval": "New vendor registration: {name} is waiting for approval.",
    "compliance_update": "Your compliance score changed from {previous_score} to {new_score}.",
    "bid_accepted": "Congratulations! Your bid for \"{title}\" was accepted.",
    "bid_not_selected": "Your bid for \"{title}\" was not selected.",
    "bid_evaluated": "Your bid status changed to {status}.",
    "payment_created": "A payment of {amount} was created for your awarded bid.",
    "payment_status": "Your payment is now {status}.",
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return str(key or "")


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def vendor_status_notification(status: str) -> str:
    return VENDOR_STATUS_NOTIFICATIONS.get(status, f"Your vendor account status changed to {status}.")


def notification_message(kind: str, **values: object) -> str:
    template = NOTIFICATION_TEMPLATES.get(kind)
    if not template:
        return kind
    return template.format(**values)

"""
Localized messages for ledger errors and operation results.
Lookup falls back to English, then to the message code itself.
"""
from typing import Dict, Optional

from cashledger.core.config import settings


MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        # errors
        "validation_error": "Invalid request: {detail}",
        "invalid_amount": "Amount must be a positive number",
        "invalid_opening_amount": "Opening amount must be zero or a positive number",
        "unknown_transaction_type": "Invalid transaction type: {value}",
        "unknown_reference_type": "Invalid reference type: {value}",
        "invalid_sign": "An explicit sign is only allowed for adjustments and must be 1 or -1",
        "same_account": "Cannot transfer to the same box",
        "reason_required": "A reason is required to force-close a cash box",
        "name_required": "Money box name is required",
        "duplicate_name": "A money box named '{name}' already exists",
        "closing_amount_required": "Closing amount is required",
        "max_withdrawal_exceeded": "Withdrawal exceeds the allowed maximum of {limit}",
        "manual_type_not_allowed": "Transaction type '{value}' is not allowed for manual entries",
        "not_found": "Not found",
        "account_not_found": "Box {account_id} not found",
        "money_box_not_found": "Money box '{name}' not found",
        "destination_not_found": "Destination box {account_id} not found",
        "daily_money_box_not_found": "Daily money box not found",
        "no_open_cash_box": "No open cash box found",
        "invalid_state": "Operation not allowed in the current state",
        "account_closed": "Cash box {account_id} is closed",
        "already_open": "User already has an open cash box",
        "already_closed": "Cash box is already closed",
        "not_cash_box_owner": "Cash box {account_id} does not belong to the current user",
        "not_a_money_box": "Box {account_id} is not a money box",
        "not_a_cash_box": "Box {account_id} is not a cash box",
        "money_box_has_transactions": "Cannot delete a money box that has transactions",
        "default_money_box_protected": "The money box '{name}' is required by the system",
        "insufficient_balance": "Insufficient balance: available {available}, required {required}",
        "transaction_conflict": "The box was modified concurrently, please retry",
        "internal": "An internal error occurred while saving the transaction",
        # results
        "cash_box_opened": "Cash box opened successfully",
        "cash_box_closed": "Cash box closed successfully",
        "cash_box_force_closed": "Cash box force-closed successfully",
        "transaction_added": "Transaction added successfully",
        "transfer_done": "Transfer completed successfully",
        "transfer_to_daily_done": "Transferred to the daily money box successfully",
        "transfer_from_daily_done": "Transferred from the daily money box successfully",
        "transfer_to_box_done": "Transferred to {name} successfully",
        "money_box_created": "Money box created successfully",
        "money_box_updated": "Money box updated successfully",
        "money_box_deleted": "Money box deleted successfully",
        "settings_updated": "Cash box settings updated successfully",
    },
    "ar": {
        "validation_error": "طلب غير صالح: {detail}",
        "invalid_amount": "يجب أن يكون المبلغ أكبر من صفر",
        "invalid_opening_amount": "مبلغ الفتح يجب أن يكون صفراً أو أكبر",
        "unknown_transaction_type": "نوع المعاملة غير صالح",
        "unknown_reference_type": "نوع المرجع غير صالح",
        "same_account": "لا يمكن التحويل إلى نفس الصندوق",
        "reason_required": "سبب الإغلاق الإجباري مطلوب",
        "name_required": "اسم صندوق المال مطلوب",
        "duplicate_name": "يوجد صندوق مال بنفس الاسم",
        "closing_amount_required": "مبلغ الإغلاق مطلوب",
        "account_not_found": "الصندوق غير موجود",
        "money_box_not_found": "لم يتم العثور على صندوق المال",
        "destination_not_found": "لم يتم العثور على صندوق المال المصدر أو الوجهة",
        "daily_money_box_not_found": "لم يتم العثور على الصندوق اليومي",
        "no_open_cash_box": "لا يوجد صندوق مفتوح",
        "account_closed": "الصندوق مغلق",
        "already_open": "المستخدم لديه صندوق مفتوح بالفعل",
        "already_closed": "الصندوق مغلق بالفعل",
        "money_box_has_transactions": "لا يمكن حذف صندوق المال لوجود معاملات",
        "insufficient_balance": "الرصيد غير كافٍ",
        "transaction_conflict": "تم تعديل الصندوق في نفس الوقت، يرجى إعادة المحاولة",
        "internal": "حدث خطأ داخلي في الخادم",
        "cash_box_opened": "تم فتح الصندوق بنجاح",
        "cash_box_closed": "تم إغلاق الصندوق بنجاح",
        "cash_box_force_closed": "تم إغلاق الصندوق إجبارياً بنجاح",
        "transaction_added": "تم إضافة المعاملة بنجاح",
        "transfer_done": "تم التحويل بنجاح",
        "transfer_to_daily_done": "تم التحويل إلى الصندوق اليومي بنجاح",
        "transfer_from_daily_done": "تم التحويل من الصندوق اليومي بنجاح",
        "transfer_to_box_done": "تم التحويل إلى {name} بنجاح",
        "money_box_created": "تم إنشاء صندوق المال بنجاح",
        "money_box_updated": "تم تحديث صندوق المال بنجاح",
        "money_box_deleted": "تم حذف صندوق المال بنجاح",
        "settings_updated": "تم تحديث إعدادات الصندوق بنجاح",
    },
}


def translate(code: str, language: Optional[str] = None, **params) -> str:
    """
    Resolve a message code in the configured language.

    Args:
        code: Message code (e.g. 'insufficient_balance')
        language: Overrides settings.language
        **params: Values interpolated into the template

    Returns:
        The formatted message
    """
    lang = language or settings.language
    template = MESSAGES.get(lang, {}).get(code) or MESSAGES["en"].get(code) or code
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template

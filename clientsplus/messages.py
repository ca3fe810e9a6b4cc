# clientsplus/messages.py
"""
Localized user-facing failure messages.

Messages are keyed by locale and by message id. Error kinds use their
``ErrorKind`` value as the id; a few flow-specific messages (OTP expiry,
wrong code, superadmin denial) have their own ids.
"""
from typing import Dict, Optional

DEFAULT_LOCALE = "en"

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "credential_invalid": "Incorrect email or password.",
        "account_disabled": "This account is disabled or not yet verified.",
        "rate_limited": "Too many attempts. Please try again in 15 minutes.",
        "challenge_not_found": "The verification code has expired. Request a new code.",
        "authorization_denied": "You do not have permission to access this resource.",
        "network": "Network error. Please check your connection.",
        "network_timeout": "The connection timed out. Please try again.",
        "server_fault": "Server error. Please try again later.",
        "request_rejected": "The request could not be completed.",
        "session_expired": "Your session has expired. Please sign in again.",
        "otp_send_failed": "Failed to send the verification code. Please try again.",
        "otp_wrong_code": "The verification code is incorrect.",
        "otp_verify_failed": "Verification failed. Please try again.",
        "otp_invalid_phone": "Enter a valid mobile number.",
        "otp_invalid_code": "The verification code must be 6 digits.",
        "otp_cooldown": "Please wait before requesting another code.",
        "superadmin_denied": "Access denied. This account does not have superadmin privileges.",
    },
    "ar": {
        "credential_invalid": "البريد الإلكتروني أو كلمة المرور غير صحيحة",
        "account_disabled": "هذا الحساب معطل أو لم يتم التحقق منه بعد",
        "rate_limited": "تم تجاوز عدد المحاولات المسموح. حاول بعد 15 دقيقة.",
        "challenge_not_found": "انتهت صلاحية رمز التحقق. اطلب رمز جديد.",
        "authorization_denied": "ليس لديك صلاحية للوصول إلى هذا المورد",
        "network": "خطأ في الاتصال بالشبكة",
        "network_timeout": "انتهت مهلة الاتصال. يرجى المحاولة مرة أخرى",
        "server_fault": "خطأ في الخادم. يرجى المحاولة لاحقاً",
        "request_rejected": "تعذر إتمام الطلب",
        "session_expired": "انتهت الجلسة. يرجى تسجيل الدخول مرة أخرى",
        "otp_send_failed": "فشل إرسال رمز التحقق. حاول مرة أخرى.",
        "otp_wrong_code": "رمز التحقق غير صحيح",
        "otp_verify_failed": "حدث خطأ في التحقق. حاول مرة أخرى.",
        "otp_invalid_phone": "أدخل رقم هاتف صحيح",
        "otp_invalid_code": "رمز التحقق يجب أن يتكون من 6 أرقام",
        "otp_cooldown": "يرجى الانتظار قبل طلب رمز جديد",
        "superadmin_denied": "تم رفض الوصول. هذا الحساب لا يملك صلاحيات المشرف العام.",
    },
}


def get_message(message_id: str, locale: Optional[str] = None) -> str:
    """Return the message for ``message_id``, falling back to the default locale."""
    catalog = MESSAGES.get(locale or DEFAULT_LOCALE) or MESSAGES[DEFAULT_LOCALE]
    if message_id in catalog:
        return catalog[message_id]
    return MESSAGES[DEFAULT_LOCALE].get(message_id, message_id)

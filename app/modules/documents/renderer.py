"""
HTML loan documents.

Two printable forms are rendered from a loan: the English application
form and the traditional Telugu pledge deed. Templates live next to this
module and are rendered with autoescaping on, so applicant-supplied text
always reaches the page escaped.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from jinja2 import Environment, PackageLoader, select_autoescape

from app.core.config import settings
from app.modules.payments.reconciliation import to_decimal

TELUGU_ONES = ["", "ఒక్కటి", "రెండు", "మూడు", "నాలుగు", "ఐదు", "ఆరు", "ఏడు", "ఎనిమిది", "తొమ్మిది"]
TELUGU_TEENS = [
    "పది", "పదకొండు", "పన్నెండు", "పదమూడు", "పద్నాలుగు",
    "పదిహేను", "పదహారు", "పదిహేడు", "పద్దెనిమిది", "పందొమ్మిది",
]
TELUGU_TENS = ["", "", "ఇరవై", "ముప్పై", "నలభై", "యాభై", "అరవై", "డెబ్బై", "ఎనభై", "తొంభై"]
TELUGU_HUNDREDS = [
    "", "వంద", "రెండువందలు", "మూడువందలు", "నాలుగువందలు", "ఐదువందలు",
    "ఆరువందలు", "ఏడువందలు", "ఎనిమిదివందలు", "తొమ్మిదివందలు",
]


def telugu_words(value) -> str:
    """
    Spell a whole amount in Telugu.

    Below a thousand the number is spelled out in full. Larger amounts are
    simplified to a count of thousands (వేలు) or lakhs (లక్షలు).
    """
    num = int(to_decimal(value))
    if num == 0:
        return "సున్న"
    if num < 10:
        return TELUGU_ONES[num]
    if num < 20:
        return TELUGU_TEENS[num - 10]
    if num < 100:
        return TELUGU_TENS[num // 10] + (" " + TELUGU_ONES[num % 10] if num % 10 else "")
    if num < 1000:
        rest = num % 100
        return TELUGU_HUNDREDS[num // 100] + (" " + telugu_words(rest) if rest else "")
    if num >= 100000:
        return f"{num // 100000} లక్షలు"
    return f"{num // 1000} వేలు"


def format_amount(value) -> str:
    """Group thousands; keep paise only when there are any"""
    amount = to_decimal(value)
    if amount == amount.to_integral_value():
        return f"{amount:,.0f}"
    return f"{amount:,.2f}"


def format_number(value) -> str:
    """Weights and rates without trailing zeros"""
    number = to_decimal(value)
    if number == number.to_integral_value():
        return str(number.quantize(Decimal("1")))
    return format(number.normalize(), "f")


def us_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return f"{value.month}/{value.day}/{value.year}"


def telugu_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return f"{value.day}-{value.month}-{value.year}"


def label(value) -> str:
    """Enum or plain value as display text"""
    if value is None:
        return ""
    return getattr(value, "value", value)


env = Environment(
    loader=PackageLoader("app.modules.documents", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
env.filters["amount"] = format_amount
env.filters["number"] = format_number
env.filters["telugu_words"] = telugu_words
env.filters["us_date"] = us_date
env.filters["telugu_date"] = telugu_date
env.filters["label"] = label
env.globals["currency"] = settings.CURRENCY_SYMBOL


def render_application(loan) -> str:
    """English gold loan application form"""
    return env.get_template("loan_application.html").render(loan=loan)


def render_traditional(loan, today: Optional[datetime] = None) -> str:
    """Telugu pledge deed dated today"""
    return env.get_template("traditional_loan.html").render(
        loan=loan, today=today or datetime.now()
    )


def application_filename(loan) -> str:
    return f"loan-application-{loan.loan_number}.html"


def traditional_filename(loan) -> str:
    return f"traditional-loan-{loan.loan_number}.html"

import secrets
from decimal import Decimal

QUIZ_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
QUIZ_CODE_LENGTH = 8


def generate_quiz_code():
    return "".join(secrets.choice(QUIZ_CODE_ALPHABET) for _ in range(QUIZ_CODE_LENGTH))


def generate_unique_quiz_code(max_tries=10):
    from quiz.models import Quiz

    code = generate_quiz_code()
    for _ in range(max_tries):
        if not Quiz.objects.filter(quiz_code=code).exists():
            return code
        code = generate_quiz_code()
    raise RuntimeError("Could not generate a unique quiz code")


def as_number(value):
    """Decimal -> int or float so JsonResponse renders a JSON number."""
    if value is None:
        return None
    value = Decimal(str(value))
    if value == value.to_integral_value():
        return int(value)
    return float(value)

from fastapi import Request

from caseflow.errors import ValidationError

ACTOR_HEADER = 'x-actor-id'


def get_actor_id(request: Request) -> int:
    """Acting user id, supplied by the fronting auth layer."""
    raw = request.headers.get(ACTOR_HEADER, '').strip()
    if not raw:
        raise ValidationError('X-Actor-Id header is required')
    try:
        actor_id = int(raw)
    except ValueError:
        raise ValidationError(f"Invalid X-Actor-Id '{raw}'") from None
    if actor_id <= 0:
        raise ValidationError(f"Invalid X-Actor-Id '{raw}'")
    return actor_id

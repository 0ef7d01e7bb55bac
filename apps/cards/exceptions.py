"""
Business errors raised by the card services.

Every error is a ValueError so callers that already treat ValueError as a
user-facing failure keep working. ``status_code`` is what the JSON views
answer with.
"""


class CardError(ValueError):
    status_code = 400


class CardValidationError(CardError):
    status_code = 400


class CardStateConflict(CardError):
    status_code = 409


class CapacityExceeded(CardStateConflict):
    pass


class AlreadyReissued(CardStateConflict):
    pass


class CardAuthorizationError(CardError):
    status_code = 403


class NotHouseholdMember(CardAuthorizationError):
    pass


class CrossHouseholdRegistration(CardAuthorizationError):
    pass


class MemberNotApproved(CardAuthorizationError):
    pass


class NotCardOwner(CardAuthorizationError):
    pass


class CardNotFound(CardError):
    status_code = 404


class RegistrationNotFound(CardNotFound):
    pass


class ReminderStateNotFound(CardNotFound):
    pass


class CallbackIntegrityError(CardError):
    status_code = 400

from typing import Optional


class ProtocolError(Exception):
    """Base class for every failure raised or reported by blindcash."""


class InvalidAmount(ProtocolError):
    pass


class EmptyIdentity(ProtocolError):
    pass


class MalformedToken(ProtocolError):
    pass


class InvalidSignature(ProtocolError):
    pass


class TokenAlreadySigned(ProtocolError):
    pass


class ShareMismatch(ProtocolError):

    def __init__(self, index: int, message: Optional[str] = None):
        self.index = index
        super().__init__(message or f"Hash mismatch at index {index}")


class CandidateMismatch(ProtocolError):

    def __init__(self, index: int, message: Optional[str] = None):
        self.index = index
        super().__init__(message or f"Document {index} is invalid")


class InvalidContent(CandidateMismatch):

    def __init__(self, index: int):
        super().__init__(index, f"Document {index} does not satisfy the content policy")


class CandidateCountError(ProtocolError):
    pass


class SessionStateError(ProtocolError):
    pass

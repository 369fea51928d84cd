"""
Exception hierarchy for the threshold voting engine.

Every cryptographic failure surfaces as one of these types. Nothing is
coerced to a default value.
"""


class VotingProtocolError(Exception):
    """Base exception for protocol operations"""
    pass


class CeremonyVerificationFailure(VotingProtocolError):
    """A DKG share failed the Feldman commitment check (ceremony fatal)"""

    def __init__(self, message: str, sender: int = None, recipient: int = None):
        super().__init__(message)
        self.sender = sender
        self.recipient = recipient


class InsufficientShares(VotingProtocolError):
    """Fewer than threshold key-holder contributions are available"""

    def __init__(self, message: str, available: int = 0, required: int = 0):
        super().__init__(message)
        self.available = available
        self.required = required


class InvalidBallotDecode(VotingProtocolError):
    """Brute-force discrete log found no option within the bound"""
    pass


class SignatureVerificationFailure(VotingProtocolError):
    """An Ed25519 signature on a submission did not verify"""
    pass


class InconsistentShareSet(VotingProtocolError):
    """Share records were computed against different ballot sets"""
    pass


class TallyConflict(VotingProtocolError):
    """A tally was already finalized with different counts"""
    pass


class ShareBlobError(VotingProtocolError):
    """Serialized share blob is truncated or malformed"""
    pass

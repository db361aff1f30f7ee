from .agency import (
    CandidateBlinder,
    FairSigningCoordinator,
    SessionState,
    SigningSession,
    diplomatic_immunity_check,
    make_document,
)
from .blind_rsa import BankKey, BankPublicKey, key_generation
from .coin import Bank, DoubleSpendAnalyzer, SpendLedger, TokenIssuer, TokenVerifier
from .errors import *
from .models import *

#Expose the high-level pipeline pieces:
#Request / result models and the error taxonomy
#Scoring / ranking
#Collaborator boundary and cancellation
#The engine itself (the "one call" entry point) is imported from dispatch.dispatcher

from .models import DispatchError, DispatchRequest, DispatchResult, DispatchStatus, OfferAttempt, OfferOutcome, Priority
from .cancellation import CancellationToken, DispatchCancelled
from .collaborators import CollaboratorError, CollaboratorGateway, FareRule, OfferReply
from .policy import DispatchPolicy, ScoreWeights, default_dispatch_policy
from .scoring import score_candidates, score_breakdown

__all__ = [
    "DispatchError",
    "DispatchRequest",
    "DispatchResult",
    "DispatchStatus",
    "OfferAttempt",
    "OfferOutcome",
    "Priority",
    "CancellationToken",
    "DispatchCancelled",
    "CollaboratorError",
    "CollaboratorGateway",
    "FareRule",
    "OfferReply",
    "DispatchPolicy",
    "ScoreWeights",
    "default_dispatch_policy",
    "score_candidates",
    "score_breakdown",
]

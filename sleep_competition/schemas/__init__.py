from sleep_competition.schemas.payload_contracts import (
    CompetitionEnvelope,
    CompetitionRequest,
    DecrementScoreRequest,
    LeaderboardEntryEnvelope,
    RecordStatRequest,
    RemoveParticipantRequest,
    ReportedDatesRequest,
    StartCompetitionRequest,
    UserCompetitionsRequest,
)

__all__ = [
    "StartCompetitionRequest",
    "RecordStatRequest",
    "DecrementScoreRequest",
    "CompetitionRequest",
    "RemoveParticipantRequest",
    "ReportedDatesRequest",
    "UserCompetitionsRequest",
    "LeaderboardEntryEnvelope",
    "CompetitionEnvelope",
]

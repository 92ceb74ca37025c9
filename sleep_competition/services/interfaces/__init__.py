from .competition_repository import CompetitionRepository
from .score_repository import ScoreRepository

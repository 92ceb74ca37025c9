from .repositories import DBCompetitionRepository, DBScoreRepository
from .session import create_session, database_url, get_engine

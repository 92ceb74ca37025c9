from .repositories import InMemoryCompetitionRepository, InMemoryScoreRepository

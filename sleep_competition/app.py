from __future__ import annotations

from sleep_competition.config.runtime import RuntimeSettings
from sleep_competition.db import DBCompetitionRepository, DBScoreRepository, create_session
from sleep_competition.services.action_dispatch import ActionDispatcher
from sleep_competition.services.competition_manager import CompetitionManager
from sleep_competition.utils.dates import today_clock
from sleep_competition.utils.logging_config import setup_logging


def configure_logging(settings: RuntimeSettings) -> None:
    setup_logging(settings.log_level, sql_echo=settings.sql_echo)


def build_manager(settings: RuntimeSettings | None = None) -> CompetitionManager:
    settings = settings or RuntimeSettings.from_env()
    session = create_session()

    return CompetitionManager(
        competition_repository=DBCompetitionRepository(session),
        score_repository=DBScoreRepository(session),
        clock=today_clock(settings.timezone),
    )


def build_dispatcher(settings: RuntimeSettings | None = None) -> ActionDispatcher:
    return ActionDispatcher(build_manager(settings))

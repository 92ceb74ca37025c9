"""Sleep-adherence competitions: scoring, finalization and leaderboards."""

"""Feature modules: catalog, questions, quiz engine, leaderboard."""

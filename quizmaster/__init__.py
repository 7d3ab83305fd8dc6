"""
QuizMaster: Open Trivia DB quizzes with a countdown, scoring and a leaderboard.
"""
__version__ = "1.0.0"

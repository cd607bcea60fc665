"""HTTP API for learner progress, quizzes and practice games"""

"""Pydantic models for learner progress, achievements and quizzes"""

"""Quiz grading and essay review"""

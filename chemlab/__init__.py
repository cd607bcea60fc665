"""ChemLab learner progression and quiz grading backend"""

__version__ = "1.0.0"

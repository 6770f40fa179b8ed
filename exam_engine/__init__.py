"""
Exam Engine

Assessment (exam) engine: administrators define timed, access-gated
assessments over a shared Question Store; participants start attempts,
answer, and submit them for automatic scoring.

The platform features:
1. Eligibility rules (publication, roles, open/close window, attempt count)
2. Per-attempt randomization that stays stable across resumes
3. Server-side time limits with a fixed grace tolerance
4. Reveal policies that gate access to answer keys
5. In-memory and SQLAlchemy storage backends
"""

__version__ = "1.0.0"

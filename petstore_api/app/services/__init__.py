"""
Service layer abstraction.

Each service encapsulates the business rules of one collection and
talks to Redis only through the document store and query evaluator
from ``core.kv``, so API handlers never see keys or index sets.
"""

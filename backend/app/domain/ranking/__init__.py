"""Ranking domain exports."""

from .memory import MemoryCandidateRepository
from .postgres import PostgresCandidateRepository
from .repository import CandidateRepository
from .service import RankingService

__all__ = [
	"CandidateRepository",
	"MemoryCandidateRepository",
	"PostgresCandidateRepository",
	"RankingService",
]

from gearshelf.matching.matcher import CandidateMatcher

__all__ = ['CandidateMatcher']

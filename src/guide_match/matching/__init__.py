from guide_match.matching.arbiter import RespondOutcome, RespondResult, SelectionArbiter

__all__ = ["RespondOutcome", "RespondResult", "SelectionArbiter"]

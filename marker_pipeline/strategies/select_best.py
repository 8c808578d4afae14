from ..ip_types import Candidate, TrackedObject


class BestCandidateSelect:
    """
    Strategy: bind each tracked object to its highest-confidence candidate.
    Objects without a matching candidate are marked not visible and skipped.
    Candidate ids that match no tracked object are ignored.
    """

    def select(
        self, candidates: list[Candidate], objects: list[TrackedObject]
    ) -> list[tuple[int, TrackedObject, Candidate]]:
        matches = []
        for i, obj in enumerate(objects):
            best = None
            for cand in candidates:
                if cand.marker_id != obj.id:
                    continue
                # strictly greater, so the first seen wins ties
                if best is None or best.cf < cand.cf:
                    best = cand
            if best is None:
                obj.visible = False
                continue
            matches.append((i, obj, best))
        return matches

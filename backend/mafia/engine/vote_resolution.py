from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional

Eligibility = Callable[[str], bool]


def tally_votes(
    votes: Mapping[str, str],
    voter_eligible: Eligibility,
    target_eligible: Eligibility,
) -> Dict[str, int]:
    # votes is keyed by voter, so a voter can only ever hold one counted vote
    counter: Dict[str, int] = {}
    for voter_id, target_id in votes.items():
        if not target_id:
            continue
        if not voter_eligible(voter_id) or not target_eligible(target_id):
            continue
        counter[target_id] = counter.get(target_id, 0) + 1
    return counter


def resolve_majority(
    votes: Mapping[str, str],
    voter_eligible: Eligibility,
    target_eligible: Eligibility,
) -> Optional[str]:
    """Return the unique top-voted target, or None on a tie or with no counted votes.

    Shared by the day elimination and the mafia kill; the two differ only in
    the eligibility predicates passed in.
    """
    counter = tally_votes(votes, voter_eligible, target_eligible)
    if not counter:
        return None

    max_votes = max(counter.values())
    if max_votes <= 0:
        return None
    leaders = [target_id for target_id, count in counter.items() if count == max_votes]
    if len(leaders) != 1:
        return None
    return leaders[0]

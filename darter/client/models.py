"""View models for a scoring device and the mappers between them and API payloads."""
import json
import platform
from dataclasses import dataclass, field, asdict, fields as dataclass_fields
from typing import List, Optional

from darter.services.matches.scoring import (
    OPPONENT, PLAYER, RoundScore, get_player_identifier, get_player_number,
    initialize_rounds, is_bust, is_checkout_attempt, is_winning_throw, next_remaining,
    recalculate_to_go_scores,
)


@dataclass
class MatchSetup:
    player_name: str
    opponent_name: str
    start_score: int = 501
    limit_rounds: Optional[int] = None
    format_type: Optional[str] = None
    legs_count: Optional[int] = None
    checkout_rule: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'MatchSetup':
        known = {f.name for f in dataclass_fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class MatchState:
    player_name: str
    opponent_name: str
    start_score: int
    match_id: Optional[str] = None
    limit_rounds: Optional[int] = None
    rounds: List[RoundScore] = field(default_factory=list)
    active_round_index: int = 0
    active_player: str = PLAYER
    current_input: str = ''
    player_legs: int = 0
    opponent_legs: int = 0
    current_leg: int = 1
    leg_finished: bool = False
    winner: Optional[str] = None
    checkout_darts: Optional[int] = None
    match_status: str = 'setup'
    session_id: Optional[str] = None
    has_lock: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'MatchState':
        known = {f.name for f in dataclass_fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values['rounds'] = [r if isinstance(r, RoundScore) else RoundScore(**r)
                            for r in values.get('rounds') or []]
        return cls(**values)


@dataclass
class ThrowEntry:
    player: str
    round_number: int
    throw_number: int
    score: int
    remaining_score: int
    is_checkout_attempt: bool = False
    is_bust: bool = False
    is_winning_throw: bool = False


@dataclass
class PlayerMatchStats:
    total_score: int
    darts_thrown: int
    rounds_played: int
    average_score: float
    first_9_average: Optional[float]
    scores_60_plus: int
    scores_80_plus: int
    scores_100_plus: int
    scores_120_plus: int
    scores_140_plus: int
    scores_170_plus: int
    scores_180: int
    checkout_attempts: int
    successful_checkouts: int
    checkout_percentage: float
    high_finish: Optional[int]
    finishes_100_plus: int
    best_leg_darts: Optional[int]
    worst_leg_darts: Optional[int]


def make_throw_entry(player: str, round_number: int, current_score: int, scored: int,
                     throw_number: int = 3) -> ThrowEntry:
    """Score a round entered at the board: a bust scores 0 and leaves the remaining score as it was."""
    bust = is_bust(current_score, scored)
    return ThrowEntry(
        player=player,
        round_number=round_number,
        throw_number=throw_number,
        score=0 if bust else scored,
        remaining_score=next_remaining(current_score, scored),
        is_checkout_attempt=is_checkout_attempt(current_score),
        is_bust=bust,
        is_winning_throw=not bust and is_winning_throw(current_score, scored),
    )


def build_create_match_command(setup: MatchSetup, match_type_id: str) -> dict:
    player_name = (setup.player_name or '').strip() or 'Player 1'
    opponent_name = (setup.opponent_name or '').strip() or 'Player 2'
    command = {
        'match_type_id': match_type_id,
        'player1': {'guest_name': player_name},
        'player2': {'guest_name': opponent_name},
        'start_score': setup.start_score,
        'checkout_rule': setup.checkout_rule or 'double_out',
        'format_type': setup.format_type or 'unlimited',
        'sets_count': None,
        'is_private': False,
    }
    if setup.legs_count is not None:
        command['legs_count'] = setup.legs_count
    return command


def build_create_throw_command(entry: ThrowEntry, leg_number: int, set_number: int = 1) -> dict:
    return {
        'leg_number': leg_number,
        'set_number': set_number,
        'player_number': get_player_number(entry.player),
        'throw_number': entry.throw_number,
        'round_number': entry.round_number,
        'score': entry.score,
        'remaining_score': entry.remaining_score,
        'is_checkout_attempt': entry.is_checkout_attempt,
    }


def build_acquire_lock_command(auto_extend: bool = True, device_info: Optional[dict] = None) -> dict:
    if device_info is None:
        device_info = {
            'os': platform.system(),
            'platform': platform.platform(),
            'user_agent': f'darter-client (python {platform.python_version()})',
        }
    # the API takes device info as a JSON string, not an object
    return {'device_info': json.dumps(device_info), 'auto_extend': auto_extend}


def map_match_dto_to_state(match: dict, current_rounds: Optional[List[RoundScore]] = None) -> dict:
    """Fields of a MatchState derived from a match payload, ready for ``MatchState(**...)``
    or ``dataclasses.replace``."""
    return {
        'match_id': match['id'],
        'player_name': match.get('player1_guest_name') or match.get('player1_user_id') or 'Player 1',
        'opponent_name': match.get('player2_guest_name') or match.get('player2_user_id') or 'Player 2',
        'start_score': match['start_score'],
        'player_legs': match.get('player1_legs_won', 0),
        'opponent_legs': match.get('player2_legs_won', 0),
        'current_leg': match.get('current_leg', 1),
        'match_status': match['match_status'],
        'winner': (get_player_identifier(match['winner_player_number'])
                   if match.get('winner_player_number') else None),
        'rounds': list(current_rounds) if current_rounds else initialize_rounds(match['start_score']),
    }


def map_throw_dto_to_round_score(throw: dict, current_rounds: List[RoundScore],
                                 start_score: int = 501) -> List[RoundScore]:
    """Place one throw record into the round table (returns a new list)."""
    rounds = list(current_rounds)
    index = throw['round_number'] - 1
    while len(rounds) <= index:
        rounds.append(RoundScore(round=len(rounds) + 1, player1_scored=None, player1_to_go=0,
                                 player2_scored=None, player2_to_go=0))
    player = get_player_identifier(throw['player_number'])
    if throw['throw_number'] == 3 or throw['remaining_score'] == 0:
        rounds[index] = rounds[index].with_player(player, throw['score'], throw['remaining_score'])
    if index < len(rounds) - 1:
        return recalculate_to_go_scores(rounds, index + 1, player, start_score)
    return rounds


def map_throws_to_rounds(throws: List[dict], start_score: int,
                         leg_number: Optional[int] = None, set_number: int = 1) -> List[RoundScore]:
    """Rebuild a leg's round table from its throw records."""
    selected = [t for t in throws
                if t.get('set_number', 1) == set_number
                and (leg_number is None or t['leg_number'] == leg_number)]
    selected.sort(key=lambda t: (t['round_number'], t['throw_number'], t['player_number']))
    rounds = initialize_rounds(start_score)
    for t in selected:
        rounds = map_throw_dto_to_round_score(t, rounds, start_score)
    return rounds


def map_stats_to_player_match_stats(stats: dict) -> PlayerMatchStats:
    attempts = stats.get('checkout_attempts') or 0
    successes = stats.get('successful_checkouts') or 0
    return PlayerMatchStats(
        total_score=stats['total_score'],
        darts_thrown=stats['darts_thrown'],
        rounds_played=stats['rounds_played'],
        average_score=stats['average_score'],
        first_9_average=stats.get('first_9_average'),
        scores_60_plus=stats['scores_60_plus'],
        scores_80_plus=stats['scores_80_plus'],
        scores_100_plus=stats['scores_100_plus'],
        scores_120_plus=stats['scores_120_plus'],
        scores_140_plus=stats['scores_140_plus'],
        scores_170_plus=stats['scores_170_plus'],
        scores_180=stats['scores_180'],
        checkout_attempts=attempts,
        successful_checkouts=successes,
        checkout_percentage=(successes / attempts * 100) if attempts else 0.0,
        high_finish=stats.get('high_finish'),
        finishes_100_plus=stats['finishes_100_plus'],
        best_leg_darts=stats.get('best_leg_darts'),
        worst_leg_darts=stats.get('worst_leg_darts'),
    )


__all__ = [
    'MatchSetup', 'MatchState', 'ThrowEntry', 'PlayerMatchStats', 'RoundScore', 'OPPONENT', 'PLAYER',
    'make_throw_entry', 'build_create_match_command', 'build_create_throw_command',
    'build_acquire_lock_command', 'map_match_dto_to_state', 'map_throw_dto_to_round_score',
    'map_throws_to_rounds', 'map_stats_to_player_match_stats',
]

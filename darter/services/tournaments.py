"""Tournament bookkeeping: creation with hand-entered match results, and the
aggregates shown in a user's tournament history."""
import math
from typing import List, Optional

from flask import current_app

from darter import db
from darter.errors import NotFound
from darter.models import MatchType, Tournament, TournamentMatchResult, TournamentType, isoformat

DEFAULT_TOURNAMENT_TYPE_ID = 1


def create_tournament(user_id: str, name: str, played_on, matches: List[dict],
                      tournament_type_id: Optional[int] = None, final_place: Optional[int] = None) -> Tournament:
    """Store a tournament and its match results in one transaction."""
    type_id = tournament_type_id or DEFAULT_TOURNAMENT_TYPE_ID
    if db.session.get(TournamentType, type_id) is None:
        raise NotFound('Invalid tournament_type_id', code='INVALID_REFERENCE')
    known_types = {mt_id for (mt_id,) in db.session.query(MatchType.id)
                   .filter(MatchType.id.in_({m['match_type_id'] for m in matches})).all()}
    for index, values in enumerate(matches):
        if values['match_type_id'] not in known_types:
            raise NotFound('Invalid match_type_id', code='INVALID_REFERENCE',
                           details=[{'field': f'matches.{index}.match_type_id', 'message': 'Unknown match type'}])

    tournament = Tournament(user_id=user_id, name=name, date=played_on,
                            tournament_type_id=type_id, final_place=final_place)
    for position, values in enumerate(matches):
        tournament.results.append(TournamentMatchResult(position=position, **values))
    db.session.add(tournament)
    db.session.commit()
    current_app.logger.info(
        f"[tournament-create] id={tournament.id} user={user_id} date={played_on.isoformat()} "
        f"matches={len(matches)}")
    return tournament


def average_score(results) -> float:
    if not results:
        return 0.0
    return round(sum(r.average_score for r in results) / len(results), 2)


def _mean(values) -> Optional[float]:
    values = list(values)
    return round(sum(values) / len(values), 2) if values else None


def tournament_statistics(results) -> dict:
    """Aggregates over a tournament's matches; a best leg of 0 means none was recorded."""
    legs = [r.best_leg for r in results if r.best_leg > 0]
    return {
        'tournament_avg': _mean(r.average_score for r in results),
        'total_180s': sum(r.score_180_count for r in results),
        'total_140_plus': sum(r.score_140_count for r in results),
        'total_100_plus': sum(r.score_100_count for r in results),
        'total_60_plus': sum(r.score_60_count for r in results),
        'avg_checkout_percentage': _mean(r.checkout_percentage for r in results),
        'best_high_finish': max((r.high_finish for r in results), default=0),
        'best_leg': min(legs) if legs else 0,
    }


def match_detail(result: TournamentMatchResult) -> dict:
    return {
        'match_id': result.id,
        'opponent': result.opponent_name,
        'result': f'{result.player_score}-{result.opponent_score}',
        'player_score': result.player_score,
        'opponent_score': result.opponent_score,
        'match_type': result.match_type.name if result.match_type else None,
        'average_score': round(result.average_score, 2),
        'first_nine_avg': round(result.first_nine_avg, 2),
        'checkout_percentage': round(result.checkout_percentage, 2),
        'high_finish': result.high_finish,
        'score_180s': result.score_180_count,
        'score_140_plus': result.score_140_count,
        'score_100_plus': result.score_100_count,
        'score_60_plus': result.score_60_count,
        'best_leg': result.best_leg,
        'worst_leg': result.worst_leg,
        'created_at': isoformat(result.created_at),
    }


def list_item(tournament: Tournament) -> dict:
    return {
        'tournament_id': tournament.id,
        'tournament_name': tournament.name,
        'tournament_date': tournament.date.isoformat(),
        'final_place': tournament.final_place,
        'tournament_type': tournament.tournament_type.name if tournament.tournament_type else None,
        'statistics': tournament_statistics(tournament.results),
        'matches': [match_detail(r) for r in tournament.results],
    }


def pagination_meta(page: int, page_size: int, total_count: int) -> dict:
    total_pages = math.ceil(total_count / page_size)
    return {
        'current_page': page,
        'page_size': page_size,
        'total_count': total_count,
        'total_pages': total_pages,
        'has_next_page': page < total_pages,
        'has_previous_page': page > 1,
    }

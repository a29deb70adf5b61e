from flask import current_app

from darter import db
from darter.models import MatchType, TournamentType

# 501 keeps a fixed id so clients can default to it without a lookup
DEFAULT_501_ID = '550e8400-e29b-41d4-a716-446655440501'

DEFAULT_MATCH_TYPES = [
    {
        'id': DEFAULT_501_ID,
        'name': '501',
        'default_start_score': 501,
        'default_checkout_rule': 'double_out',
        'default_format_type': 'first_to',
        'default_legs_count': 3,
        'description': 'Standard professional darts game. Start at 501, reduce to exactly 0, must finish on a double.',
    },
    {
        'name': '301',
        'default_start_score': 301,
        'default_checkout_rule': 'double_out',
        'default_format_type': 'first_to',
        'default_legs_count': 3,
        'description': 'Quick game variant. Start at 301, reduce to exactly 0, must finish on a double.',
    },
    {
        'name': '701',
        'default_start_score': 701,
        'default_checkout_rule': 'double_out',
        'default_format_type': 'first_to',
        'default_legs_count': 3,
        'description': 'Long format game. Start at 701, reduce to exactly 0, must finish on a double.',
    },
    {
        'name': '1001',
        'default_start_score': 1001,
        'default_checkout_rule': 'double_out',
        'default_format_type': 'first_to',
        'default_legs_count': 3,
        'description': 'Tournament format. Start at 1001, reduce to exactly 0, must finish on a double.',
    },
    {
        'name': 'Practice 501',
        'default_start_score': 501,
        'default_checkout_rule': 'double_out',
        'default_format_type': 'unlimited',
        'default_legs_count': None,
        'description': 'Practice mode for continuous play. No winner, unlimited legs.',
    },
    {
        'name': '501 Straight Out',
        'default_start_score': 501,
        'default_checkout_rule': 'straight',
        'default_format_type': 'first_to',
        'default_legs_count': 3,
        'description': 'Beginner-friendly 501. Start at 501, reduce to exactly 0, can finish on any number.',
    },
    {
        # countdown scoring does not apply; kept inactive until cricket rules exist
        'name': 'Cricket',
        'default_start_score': 0,
        'default_checkout_rule': 'straight',
        'default_format_type': 'first_to',
        'default_legs_count': 3,
        'description': 'Alternative scoring game. Close out numbers 15-20 and bullseye. (Coming soon)',
        'is_active': False,
    },
]


def seed_match_types() -> int:
    """Insert the default match types missing by name; returns how many were created."""
    existing = {name for (name,) in db.session.query(MatchType.name).all()}
    created = 0
    for entry in DEFAULT_MATCH_TYPES:
        if entry['name'] in existing:
            continue
        db.session.add(MatchType(**entry))
        created += 1
    db.session.commit()
    current_app.logger.info(f"[seed] match types created={created}")
    return created


# ids are fixed: tournaments fall back to type 1 when none is given
DEFAULT_TOURNAMENT_TYPES = [
    {'id': 1, 'name': 'Leagues + SKO'},
    {'id': 2, 'name': 'SKO'},
]


def seed_tournament_types() -> int:
    existing = {name for (name,) in db.session.query(TournamentType.name).all()}
    created = 0
    for entry in DEFAULT_TOURNAMENT_TYPES:
        if entry['name'] not in existing:
            db.session.add(TournamentType(**entry))
            created += 1
    db.session.commit()
    current_app.logger.info(f"[seed] tournament types created={created}")
    return created

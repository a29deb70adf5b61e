from flask import Blueprint, current_app
from flask_login import current_user

from darter.api.common import data_response
from darter.api.validation import Fields, json_body, query_choice, query_date, query_int
from darter.errors import NotFound, Unauthorized, ValidationFailed
from darter.models import Tournament, TournamentType
from darter.services import tournaments as service

tournaments = Blueprint('tournaments', __name__)
tournament_types = Blueprint('tournament_types', __name__)

SORT_ORDERS = ('date_desc', 'date_asc')


def _require_user():
    if not current_user.is_authenticated:
        raise Unauthorized('Authentication required')
    return current_user


def _read_result(fields: Fields) -> dict:
    return {
        'match_type_id': fields.string('match_type_id', max_length=36),
        'opponent_name': fields.string('opponent_name', required=False, max_length=255, min_length=0) or None,
        'player_score': fields.integer('player_score', required=False, default=0, minimum=0),
        'opponent_score': fields.integer('opponent_score', required=False, default=0, minimum=0),
        'average_score': fields.number('average_score', minimum=0),
        'first_nine_avg': fields.number('first_nine_avg', minimum=0),
        'checkout_percentage': fields.number('checkout_percentage', minimum=0, maximum=100),
        'score_60_count': fields.integer('score_60_count', minimum=0),
        'score_100_count': fields.integer('score_100_count', minimum=0),
        'score_140_count': fields.integer('score_140_count', minimum=0),
        'score_180_count': fields.integer('score_180_count', minimum=0),
        'high_finish': fields.integer('high_finish', minimum=0),
        'best_leg': fields.integer('best_leg', minimum=0),
        'worst_leg': fields.integer('worst_leg', minimum=0),
    }


@tournaments.route('', methods=['POST'])
def create_tournament():
    user = _require_user()
    body = json_body()
    fields = Fields(body)
    name = fields.string('name', max_length=255)
    played_on = fields.date('date')
    tournament_type_id = fields.integer('tournament_type_id', required=False, minimum=1)
    final_place = fields.integer('final_place', required=False, minimum=1, nullable=True)

    items = body.get('matches')
    matches_max = int(current_app.config.get('TOURNAMENT_MATCHES_MAX', 50))
    if not isinstance(items, list):
        fields.error('matches', 'Expected array')
        items = []
    elif not items:
        fields.error('matches', 'Must contain at least 1 match')
    elif len(items) > matches_max:
        fields.error('matches', f'Must contain at most {matches_max} matches')
        items = []
    matches = []
    for index, item in enumerate(items):
        item_fields = Fields(item, prefix=f'matches.{index}.')
        if not isinstance(item, dict):
            item_fields.error('', 'Expected object')
        matches.append(_read_result(item_fields))
        fields.errors.extend(item_fields.errors)
    fields.raise_if_errors()

    tournament = service.create_tournament(user.id, name, played_on, matches,
                                           tournament_type_id=tournament_type_id, final_place=final_place)
    return data_response(tournament.to_dict(detail=True), 201)


@tournaments.route('', methods=['GET'])
def list_tournaments():
    user = _require_user()
    limit = query_int('limit', default=10, minimum=1, maximum=100)
    offset = query_int('offset', default=0, minimum=0)
    sort = query_choice('sort', SORT_ORDERS, default='date_desc')

    query = Tournament.query.filter_by(user_id=user.id)
    total = query.count()
    if sort == 'date_asc':
        query = query.order_by(Tournament.date.asc(), Tournament.created_at.asc())
    else:
        query = query.order_by(Tournament.date.desc(), Tournament.created_at.desc())
    items = []
    for tournament in query.offset(offset).limit(limit).all():
        item = tournament.to_dict()
        item['average_score'] = service.average_score(tournament.results)
        items.append(item)
    return data_response(items, meta={'count': len(items), 'total': total,
                                      'limit': limit, 'offset': offset})


@tournaments.route('/list', methods=['GET'])
def list_tournaments_in_range():
    """Tournaments played between two dates (inclusive) with per-tournament aggregates."""
    user = _require_user()
    cfg = current_app.config
    start_date = query_date('start_date', required=True)
    end_date = query_date('end_date', required=True)
    page_size = query_int('page_size', default=cfg.get('TOURNAMENTS_PAGE_DEFAULT', 20),
                          minimum=1, maximum=cfg.get('TOURNAMENTS_PAGE_MAX', 100))
    page = query_int('page', default=1, minimum=1)
    if end_date < start_date:
        raise ValidationFailed('End date must be greater than or equal to start date', code='INVALID_DATE_RANGE')

    query = Tournament.query.filter(
        Tournament.user_id == user.id,
        Tournament.date >= start_date,
        Tournament.date <= end_date,
    )
    total = query.count()
    rows = query.order_by(Tournament.date.desc(), Tournament.created_at.desc()) \
        .offset((page - 1) * page_size).limit(page_size).all()
    return data_response([service.list_item(t) for t in rows],
                         meta=service.pagination_meta(page, page_size, total))


@tournaments.route('/<string:tournament_id>', methods=['GET'])
def get_tournament(tournament_id):
    user = _require_user()
    tournament = Tournament.query.filter_by(id=tournament_id, user_id=user.id).first()
    if tournament is None:
        raise NotFound('Tournament not found', code='TOURNAMENT_NOT_FOUND')
    return data_response(tournament.to_dict(detail=True))


@tournament_types.route('', methods=['GET'])
def list_tournament_types():
    items = [tt.to_dict() for tt in TournamentType.query.order_by(TournamentType.id.asc()).all()]
    return data_response(items, meta={'count': len(items)})

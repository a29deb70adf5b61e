from flask import Blueprint

from darter.api.common import data_response
from darter.api.validation import query_bool
from darter.errors import NotFound
from darter.models import MatchType

match_types = Blueprint('match_types', __name__)


@match_types.route('', methods=['GET'])
def list_match_types():
    is_active = query_bool('is_active', default=True)
    query = MatchType.query
    if is_active is not None:
        query = query.filter(MatchType.is_active.is_(is_active))
    items = [mt.to_dict() for mt in query.order_by(MatchType.name.asc()).all()]
    return data_response(items, meta={'count': len(items)})


@match_types.route('/<string:match_type_id>', methods=['GET'])
def get_match_type(match_type_id):
    match_type = MatchType.query.filter_by(id=match_type_id).first()
    if match_type is None:
        raise NotFound('Match type not found')
    return data_response(match_type.to_dict(detail=True))

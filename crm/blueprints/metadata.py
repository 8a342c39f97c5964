"""Metadata blueprint - flattened field definitions for form rendering."""
from flask import Blueprint, jsonify

from crm.middleware import require_login
from crm.utils.metadata import load_field_metadata

metadata_bp = Blueprint('metadata', __name__, url_prefix='/api/metadata')


@metadata_bp.route('/<object_name>/fields', methods=['GET'])
@require_login
def fields(object_name):
    return jsonify(load_field_metadata(object_name))

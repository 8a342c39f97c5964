"""
Field metadata utilities.

Field definitions for business objects are shipped as XML under
crm/metadata/<object_name>.xml. Parsing keeps every child element as a list of
strings (one entry per occurrence); flatten_field_metadata turns one such
definition into plain typed values for API clients.
"""
import os
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

from crm.exceptions import NotFoundError

METADATA_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'metadata')

NUMERIC_KEYS = {
    'maxLength', 'minValue', 'maxValue', 'precision', 'scale',
    'decimalPlaces', 'visibleLinesInEdit', 'visibleLinesInView',
    'minDigits', 'maxDigits',
}

BOOLEAN_KEYS = {
    'required', 'copyAble', 'truncate', 'percentageDisplay', 'allowSearch',
    'allowNegativeNumbers', 'onlyPositive', 'displayThousandsSeparator',
}


def _parse_number(value: str):
    """int when integral, float otherwise, None when not a number."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float('inf'), float('-inf')):
        return None
    return int(number) if number.is_integer() else number


def _parse_bool(value: str):
    if value == 'true':
        return True
    if value == 'false':
        return False
    return None


def flatten_field_metadata(field_def: Dict[str, List[str]], known_field_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Flatten one parsed field definition into typed values.

    Args:
        field_def: Mapping of key -> list of string values
        known_field_type: Field type supplied by the caller; wins over the
            'type' entry of the definition when casting defaultValue

    Returns:
        Dict with numbers for numeric keys, bools for boolean keys, a
        defaultValue cast by field type and strings for everything else.
        Empty values and values that fail to cast are left out.
    """
    flattened = {}
    field_type = known_field_type or (field_def.get('type') or [None])[0]

    for key, values in field_def.items():
        value = values[0] if values else None
        if value is None or value == '':
            continue

        if key in NUMERIC_KEYS:
            number = _parse_number(value)
            if number is not None:
                flattened[key] = number
        elif key in BOOLEAN_KEYS:
            flag = _parse_bool(value)
            if flag is not None:
                flattened[key] = flag
        elif key == 'defaultValue':
            if field_type == 'NumberField':
                number = _parse_number(value)
                if number is not None:
                    flattened[key] = number
            elif field_type == 'CheckboxField':
                flag = _parse_bool(value)
                if flag is not None:
                    flattened[key] = flag
            else:
                flattened[key] = value
        else:
            flattened[key] = value

    return flattened


def parse_field_definitions(xml_text: str) -> List[Dict[str, List[str]]]:
    """Parse <field> elements into key -> [text, ...] mappings."""
    root = ET.fromstring(xml_text)
    definitions = []
    for field in root.iter('field'):
        definition: Dict[str, List[str]] = {}
        for child in field:
            definition.setdefault(child.tag, []).append((child.text or '').strip())
        definitions.append(definition)
    return definitions


def load_field_metadata(object_name: str) -> List[Dict[str, Any]]:
    """Load and flatten the bundled field definitions of a business object."""
    if not object_name.replace('_', '').isalnum():
        raise NotFoundError(f'No field metadata for {object_name!r}')

    path = os.path.join(METADATA_DIR, f'{object_name}.xml')
    if not os.path.isfile(path):
        raise NotFoundError(f'No field metadata for {object_name!r}')

    with open(path, encoding='utf-8') as fh:
        definitions = parse_field_definitions(fh.read())

    return [flatten_field_metadata(definition) for definition in definitions]

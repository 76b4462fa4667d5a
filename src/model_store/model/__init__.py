"""Model layer: property schemas, definitions, normalization, validation, records.

Usage:
    from model_store.model import Registry, Record, validate_record
"""

from model_store.model.definition import ModelDefinition, Registry, extend
from model_store.model.normalizer import generate_uuid, normalize
from model_store.model.property import Property, PropertyType
from model_store.model.record import Record
from model_store.model.validator import validate_record, validate_value

__all__ = [
    "Property",
    "PropertyType",
    "ModelDefinition",
    "Registry",
    "extend",
    "normalize",
    "generate_uuid",
    "validate_record",
    "validate_value",
    "Record",
]

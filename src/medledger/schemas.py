"""Record shapes, their index rules and the known source files.

Every record type is described once here. The store, the mapper and the
benchmark driver all read the same table, so adding a shape means adding one
entry to ``RECORD_SCHEMAS`` (and, if it has a source file, to ``SOURCES``).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .errors import ConfigError


@dataclass(frozen=True)
class RecordSchema:
    record_type: str
    doc_type: str
    fields: tuple[str, ...]
    identity_field: str
    index_name: str
    index_fields: tuple[str, ...]
    required_fields: tuple[str, ...]
    insert_function: str
    enforce_uniqueness: bool = False

    @property
    def arity(self) -> int:
        return len(self.fields)

    @property
    def identity_index(self) -> int:
        return self.fields.index(self.identity_field)


@dataclass(frozen=True)
class SourceSpec:
    """A delimited source file and the byte length of its header line."""

    filename: str
    header_bytes: int


PATIENT = RecordSchema(
    record_type="patient",
    doc_type="patient",
    fields=("rowId", "subjectId", "gender", "dob", "dod", "dodHosp", "dodSsn", "expireFlag"),
    identity_field="subjectId",
    index_name="docType~subjectId",
    index_fields=("docType", "subjectId"),
    required_fields=("rowId", "subjectId", "gender", "dob", "expireFlag"),
    insert_function="insertPatient",
)

DICTIONARY_ITEM = RecordSchema(
    record_type="dictionaryItem",
    doc_type="dictionaryItem",
    fields=(
        "rowId", "itemid", "label", "abbreviation", "dbsource",
        "linksto", "category", "unitname", "paramType", "conceptid",
    ),
    identity_field="itemid",
    index_name="itemid",
    index_fields=("itemid",),
    required_fields=("rowId", "itemid"),
    insert_function="insertDitem",
)

PRESCRIPTION = RecordSchema(
    record_type="prescription",
    doc_type="prescription",
    fields=(
        "rowId", "subjectId", "hadmId", "icustayId", "startdate", "enddate",
        "drugType", "drug", "drugNamePoe", "drugNameGeneric", "formularyDrugCd",
        "gsn", "ndc", "prodStrength", "doseValRx", "doseUnitRx",
        "formValDisp", "formUnitDisp", "route",
    ),
    identity_field="rowId",
    index_name="rowId",
    index_fields=("rowId",),
    required_fields=("rowId", "subjectId", "hadmId", "drugType", "drug"),
    insert_function="insertPrescription",
)

INPUT_EVENT_MV = RecordSchema(
    record_type="inputEventMv",
    doc_type="inputEvent",
    fields=(
        "rowId", "subjectId", "hadmId", "icustayId", "starttime", "endtime",
        "itemid", "amount", "amountuom", "rate", "rateuom", "storetime",
        "cgid", "orderid", "linkorderid", "ordercategoryname",
        "secondarycategoryname", "ordercomponenttypedescription",
        "ordercategorydescription", "patientweight", "totalamount",
        "totalamountuom", "isopenbag", "continueinnextdept", "cancelreason",
        "statusdescription", "commentsEditedby", "commentsCanceledby",
        "commentsDate", "originalamount", "originalrate",
    ),
    identity_field="rowId",
    index_name="rowId",
    index_fields=("rowId",),
    required_fields=("rowId", "subjectId"),
    insert_function="insertInputeventMv",
)

INPUT_EVENT_CV = RecordSchema(
    record_type="inputEventCv",
    doc_type="inputEvent",
    fields=(
        "rowId", "subjectId", "hadmId", "icustayId", "charttime", "itemid",
        "amount", "amountuom", "rate", "rateuom", "storetime", "cgid",
        "orderid", "linkorderid", "stopped", "newbottle", "originalamountuom",
        "originalroute", "originalrate", "originalrateuom", "originalsite",
    ),
    identity_field="rowId",
    index_name="rowId",
    index_fields=("rowId",),
    required_fields=("rowId", "subjectId"),
    insert_function="insertInputeventCv",
    enforce_uniqueness=True,
)

RECORD_SCHEMAS: dict[str, RecordSchema] = {
    s.record_type: s
    for s in (PATIENT, DICTIONARY_ITEM, PRESCRIPTION, INPUT_EVENT_MV, INPUT_EVENT_CV)
}

# Header lengths are the quoted MIMIC-III column rows including the newline.
SOURCES: dict[str, SourceSpec] = {
    "patient": SourceSpec("PATIENTS.csv", 78),
    "dictionaryItem": SourceSpec("D_ITEMS.csv", 109),
    "prescription": SourceSpec("PRESCRIPTIONS.csv", 240),
    "inputEventMv": SourceSpec("INPUTEVENTS_MV.csv", 470),
    "inputEventCv": SourceSpec("INPUTEVENTS_CV.csv", 270),
}


def get_schema(record_type: str) -> RecordSchema:
    try:
        return RECORD_SCHEMAS[record_type]
    except KeyError:
        known = ", ".join(sorted(RECORD_SCHEMAS))
        raise ConfigError(f"Unknown record type {record_type!r} (known: {known})") from None


def schema_for_function(
    function: str, schemas: Optional[dict[str, RecordSchema]] = None
) -> Optional[RecordSchema]:
    """Return the schema whose insert entry point is ``function``, if any."""
    for schema in (schemas or RECORD_SCHEMAS).values():
        if schema.insert_function == function:
            return schema
    return None


def with_uniqueness(schemas: dict[str, RecordSchema], overrides: dict[str, bool]) -> dict[str, RecordSchema]:
    """Copy ``schemas`` with per-type ``enforce_uniqueness`` overrides applied."""
    result = dict(schemas)
    for record_type, enforce in overrides.items():
        base = result.get(record_type) or get_schema(record_type)
        result[record_type] = replace(base, enforce_uniqueness=enforce)
    return result

"""
Form routes: create, list, fetch, preview visibility, submit answers, export responses.
Forms are stored as validated FormSchema JSON and never edited after creation.
"""
import json
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from form_server.database import get_db
from form_server.errors import ResourceNotFound
from form_server.models import Form, Principal
from form_server.provider import AirtableClient, call_with_retry, upstream_json
from form_server.schema import FormDraft, FormSchema
from form_server.services import get_provider, get_token_broker
from form_server.token_broker import TokenBroker
from form_server.visibility import missing_required, visible_answers, visible_questions

logger = logging.getLogger(__name__)
router = APIRouter()

# Airtable returns at most 100 records per page; stop following offsets after this many pages
MAX_EXPORT_PAGES = 50


def _load_form(db: Session, form_id: int) -> Form:
    form = db.query(Form).filter(Form.id == form_id).first()
    if form is None:
        raise ResourceNotFound("Form not found")
    return form


def _schema_of(form: Form) -> FormSchema:
    return FormSchema(
        form_name=form.name,
        creator_id=form.creator_id,
        airtable_base_id=form.base_id,
        airtable_table_id=form.table_id,
        questions=form.get_questions_list(),
    )


def _serialize(form: Form) -> dict:
    data = _schema_of(form).model_dump(mode="json", by_alias=True)
    data["id"] = form.id
    data["createdAt"] = form.created_at.isoformat() if form.created_at else None
    return data


@router.post("/forms", status_code=201)
def create_form(payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    schema = FormDraft.from_payload(payload).build()
    if db.query(Principal).filter(Principal.id == schema.creator_id).first() is None:
        raise ResourceNotFound("Creator not found")
    questions = schema.model_dump(mode="json", by_alias=True)["questions"]
    form = Form(
        name=schema.form_name,
        creator_id=schema.creator_id,
        base_id=schema.airtable_base_id,
        table_id=schema.airtable_table_id,
        questions=json.dumps(questions),
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    logger.info("Form %s created by principal %s (%d questions)", form.id, form.creator_id, len(questions))
    return _serialize(form)


@router.get("/forms/principal/{principal_id}")
def list_forms(principal_id: int, db: Session = Depends(get_db)):
    """A principal's forms, most recent first."""
    forms = (
        db.query(Form)
        .filter(Form.creator_id == principal_id)
        .order_by(Form.created_at.desc(), Form.id.desc())
        .all()
    )
    return [_serialize(f) for f in forms]


@router.get("/forms/{form_id}")
def get_form(form_id: int, db: Session = Depends(get_db)):
    return _serialize(_load_form(db, form_id))


@router.post("/forms/{form_id}/preview")
def preview(form_id: int, answers: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    """Which questions are visible for these answers and which visible required ones are unanswered."""
    questions = _schema_of(_load_form(db, form_id)).questions
    return {
        "visible": [q.field_id for q in visible_questions(questions, answers)],
        "missingRequired": [q.field_id for q in missing_required(questions, answers)],
    }


@router.post("/forms/{form_id}/submit")
def submit(
    form_id: int,
    answers: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    broker: TokenBroker = Depends(get_token_broker),
    provider: AirtableClient = Depends(get_provider),
):
    """
    Check required fields (visible ones only), then create a record in the form's table
    with the creator's credentials. Answers to hidden or unknown questions are not sent.
    """
    form = _load_form(db, form_id)
    schema = _schema_of(form)
    missing = missing_required(schema.questions, answers)
    if missing:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "missing_required_fields",
                "error_description": "Please fill out: " + ", ".join(q.label for q in missing),
                "fields": [q.field_id for q in missing],
            },
        )
    fields = visible_answers(schema.questions, answers)
    r = call_with_retry(
        lambda: broker.call_authenticated(
            form.creator_id,
            lambda token: provider.create_record(token, form.base_id, form.table_id, fields),
        )
    )
    upstream_json(r, "submit form to Airtable")
    logger.info("Form %s submitted (%d fields)", form.id, len(fields))
    return {"message": "Form submitted successfully!"}


@router.get("/forms/{form_id}/responses")
def export_responses(
    form_id: int,
    db: Session = Depends(get_db),
    broker: TokenBroker = Depends(get_token_broker),
    provider: AirtableClient = Depends(get_provider),
):
    """All records of the form's table, following Airtable's offset pagination."""
    form = _load_form(db, form_id)
    records: list[dict] = []
    offset = None
    for _ in range(MAX_EXPORT_PAGES):
        r = call_with_retry(
            lambda: broker.call_authenticated(
                form.creator_id,
                lambda token: provider.list_records(token, form.base_id, form.table_id, offset),
            )
        )
        page = upstream_json(r, "fetch form responses")
        records.extend({"id": rec.get("id"), "fields": rec.get("fields", {})} for rec in page.get("records", []))
        offset = page.get("offset")
        if not offset:
            break
    else:
        logger.warning("Export of form %s stopped after %d pages", form.id, MAX_EXPORT_PAGES)
    return {"formName": form.name, "records": records}

"""
Form schema: questions are a closed set of variants keyed on the Airtable field type.
Only select variants carry options. FormDraft is the mutable builder; build() validates
it and returns an immutable FormSchema, which is what gets stored.
"""
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from form_server.errors import SchemaValidationFailure

SUPPORTED_FIELD_TYPES = (
    "singleLineText",
    "multilineText",
    "singleSelect",
    "multipleSelects",
    "multipleAttachments",
)


class SchemaModel(BaseModel):
    # Wire format is camelCase (fieldId, isRequired, conditionalLogic, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SelectOption(SchemaModel):
    id: str
    name: str


class ConditionalLogic(SchemaModel):
    enabled: bool = False
    dependent_field_id: str | None = None
    operator: Literal["is", "isNot"] = "is"
    value: str | None = None

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.dependent_field_id)


class QuestionBase(SchemaModel):
    field_id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    is_required: bool = False
    conditional_logic: ConditionalLogic | None = None


class SingleLineTextQuestion(QuestionBase):
    type: Literal["singleLineText"]


class MultilineTextQuestion(QuestionBase):
    type: Literal["multilineText"]


class AttachmentsQuestion(QuestionBase):
    type: Literal["multipleAttachments"]


class SingleSelectQuestion(QuestionBase):
    type: Literal["singleSelect"]
    options: list[SelectOption] = Field(default_factory=list)


class MultipleSelectsQuestion(QuestionBase):
    type: Literal["multipleSelects"]
    options: list[SelectOption] = Field(default_factory=list)


Question = Annotated[
    Union[
        SingleLineTextQuestion,
        MultilineTextQuestion,
        SingleSelectQuestion,
        MultipleSelectsQuestion,
        AttachmentsQuestion,
    ],
    Field(discriminator="type"),
]


class FormSchema(SchemaModel):
    """A validated form. Frozen: once built it is not edited."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    form_name: str
    creator_id: int
    airtable_base_id: str
    airtable_table_id: str
    questions: tuple[Question, ...]


def _validation_messages(exc: ValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        if err["type"] == "union_tag_invalid":
            messages.append(f"{loc}: unsupported field type (supported: {', '.join(SUPPORTED_FIELD_TYPES)})")
        else:
            messages.append(f"{loc}: {err['msg']}")
    return messages


class FormDraft(SchemaModel):
    """In-progress form as edited in the builder."""

    form_name: str = ""
    creator_id: int
    airtable_base_id: str = ""
    airtable_table_id: str = ""
    questions: list[Question] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "FormDraft":
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise SchemaValidationFailure(_validation_messages(e)) from e

    def _index_of(self, field_id: str) -> int:
        for i, q in enumerate(self.questions):
            if q.field_id == field_id:
                return i
        raise KeyError(field_id)

    def add_question(self, question: Question) -> None:
        self.questions.append(question)

    def remove_question(self, field_id: str) -> None:
        del self.questions[self._index_of(field_id)]

    def set_required(self, field_id: str, required: bool) -> None:
        self.questions[self._index_of(field_id)].is_required = required

    def set_logic(self, field_id: str, logic: ConditionalLogic | None) -> None:
        self.questions[self._index_of(field_id)].conditional_logic = logic

    def dependency_candidates(self, field_id: str) -> list[SingleSelectQuestion]:
        """Questions that field_id may depend on: earlier single selects."""
        earlier = self.questions[: self._index_of(field_id)]
        return [q for q in earlier if isinstance(q, SingleSelectQuestion)]

    def validation_errors(self) -> list[str]:
        errors = []
        if not self.form_name.strip():
            errors.append("formName is required")
        if not self.airtable_base_id.strip():
            errors.append("airtableBaseId is required")
        if not self.airtable_table_id.strip():
            errors.append("airtableTableId is required")
        if not self.questions:
            errors.append("at least one question is required")

        seen: dict[str, Question] = {}
        for q in self.questions:
            if q.field_id in seen:
                errors.append(f"duplicate fieldId {q.field_id!r}")
                continue
            logic = q.conditional_logic
            if logic is not None and logic.active:
                dependency = seen.get(logic.dependent_field_id)
                if not isinstance(dependency, SingleSelectQuestion):
                    errors.append(
                        f"{q.field_id!r}: dependentFieldId {logic.dependent_field_id!r} "
                        "must name an earlier singleSelect question"
                    )
                elif dependency.options and logic.value not in {o.name for o in dependency.options}:
                    errors.append(
                        f"{q.field_id!r}: value {logic.value!r} is not an option of {dependency.field_id!r}"
                    )
            seen[q.field_id] = q
        return errors

    def build(self) -> FormSchema:
        errors = self.validation_errors()
        if errors:
            raise SchemaValidationFailure(errors)
        return FormSchema(
            form_name=self.form_name.strip(),
            creator_id=self.creator_id,
            airtable_base_id=self.airtable_base_id.strip(),
            airtable_table_id=self.airtable_table_id.strip(),
            questions=tuple(_normalised(q) for q in self.questions),
        )


def _normalised(question: Question) -> Question:
    """Deep copy of question; logic that is off or names no dependency is dropped."""
    built = question.model_copy(deep=True)
    if built.conditional_logic is not None and not built.conditional_logic.active:
        built.conditional_logic = None
    return built

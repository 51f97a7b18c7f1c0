"""Typed answer values, one variant per kind of form field.

Answers are stored locally as the tagged dict of their variant and converted
to the primitive the remote API expects with ``to_wire_value``. The composite
OCR shape only exists for the local UI; on the wire it is the image data URL.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from checklist_sync.models.enums import FieldType


class TextValue(BaseModel):
    kind: Literal["text"] = "text"
    text: str = ""

    def to_wire(self) -> Any:
        return self.text


class MultiSelectValue(BaseModel):
    kind: Literal["multi_select"] = "multi_select"
    options: list[str] = Field(default_factory=list)

    def to_wire(self) -> Any:
        return list(self.options)


class PhotoValue(BaseModel):
    kind: Literal["photo"] = "photo"
    uri: str

    def to_wire(self) -> Any:
        return self.uri


class CompositeOcrValue(BaseModel):
    """Camera capture plus the text read from it."""

    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["ocr"] = "ocr"
    photo_uri: str | None = Field(default=None, alias="imageDataUrl")
    text: str = Field(default="", alias="ocrTexto")

    def to_wire(self) -> Any:
        return self.photo_uri


class SignatureValue(BaseModel):
    kind: Literal["signature"] = "signature"
    uri: str

    def to_wire(self) -> Any:
        return self.uri


FieldValue = Annotated[
    Union[TextValue, MultiSelectValue, PhotoValue, CompositeOcrValue, SignatureValue],
    Field(discriminator="kind"),
]

field_value_adapter: TypeAdapter[FieldValue] = TypeAdapter(FieldValue)

TEXT_FIELD_TYPES = {
    FieldType.SHORT_TEXT,
    FieldType.LONG_TEXT,
    FieldType.CPF,
    FieldType.DATE,
    FieldType.SINGLE_SELECT,
}


def coerce_field_value(raw: Any, field_type: FieldType | str | None = None) -> FieldValue:
    """Build the typed variant for a raw UI value.

    With a known field type the variant is chosen from it; otherwise it is
    inferred from the shape of the value.
    """
    if isinstance(
        raw, (TextValue, MultiSelectValue, PhotoValue, CompositeOcrValue, SignatureValue)
    ):
        return raw
    if isinstance(raw, dict) and "kind" in raw:
        return field_value_adapter.validate_python(raw)

    if field_type is not None:
        field_type = FieldType(field_type)
        if field_type in TEXT_FIELD_TYPES:
            return TextValue(text="" if raw is None else str(raw))
        if field_type == FieldType.MULTI_SELECT:
            return MultiSelectValue(options=[str(o) for o in (raw or [])])
        if field_type == FieldType.PHOTO:
            return PhotoValue(uri=raw)
        if field_type == FieldType.SIGNATURE:
            return SignatureValue(uri=raw)
        if field_type == FieldType.OCR_READING:
            if isinstance(raw, dict):
                return CompositeOcrValue.model_validate(raw)
            return CompositeOcrValue(photo_uri=raw)

    if raw is None:
        return TextValue()
    if isinstance(raw, str):
        return TextValue(text=raw)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return TextValue(text=str(raw))
    if isinstance(raw, list):
        return MultiSelectValue(options=[str(o) for o in raw])
    if isinstance(raw, dict) and ("imageDataUrl" in raw or "ocrTexto" in raw):
        return CompositeOcrValue.model_validate(raw)
    raise ValueError(f"Unsupported field value: {raw!r}")


def to_wire_value(stored: Any) -> Any:
    """Convert a stored answer to its wire primitive."""
    if isinstance(stored, dict) and "kind" in stored:
        return field_value_adapter.validate_python(stored).to_wire()
    # Rows written before values were typed hold the raw UI value.
    if isinstance(stored, dict) and "imageDataUrl" in stored:
        return stored["imageDataUrl"]
    return stored

"""
Trencher — Form Field Generator
=================================

What:  Derives form-field descriptors from a sample object, e.g. an entity
       fetched before building its edit (PUT/PATCH) form.
How:   Each value's type and shape picks the input type:
           int/float            → number
           bool                 → checkbox
           image/pdf/doc/xls/zip path → file (with ``accept``)
           http(s) URL          → url
           e-mail address       → email
           YYYY-MM-DD           → date
           string > 100 chars   → text + textarea
           anything else        → text
"""

import re
from dataclasses import dataclass
from typing import Any, List, Mapping

_FILE_RULES = (
    (re.compile(r"\.(jpeg|jpg|gif|png)$"), "image/*"),
    (re.compile(r"\.pdf$"), "application/pdf"),
    (
        re.compile(r"\.(doc|docx)$"),
        "application/msword, application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ),
    (
        re.compile(r"\.(xls|xlsx)$"),
        "application/vnd.ms-excel, application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ),
    (re.compile(r"\.zip$"), "application/zip, application/x-zip-compressed"),
)
_URL = re.compile(r"https?://[^\s]+")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TEXTAREA_THRESHOLD = 100


@dataclass(frozen=True)
class FormFieldDescriptor:
    label: str
    name: str
    type: str = "text"
    accept: str = ""
    is_textarea: bool = False


def _describe(key: str, value: Any) -> FormFieldDescriptor:
    label = key[:1].upper() + key[1:]
    if isinstance(value, bool):
        return FormFieldDescriptor(label, key, "checkbox")
    if isinstance(value, (int, float)):
        return FormFieldDescriptor(label, key, "number")
    if isinstance(value, str):
        for pattern, accept in _FILE_RULES:
            if pattern.search(value):
                return FormFieldDescriptor(label, key, "file", accept=accept)
        if _URL.search(value):
            return FormFieldDescriptor(label, key, "url")
        if _EMAIL.match(value):
            return FormFieldDescriptor(label, key, "email")
        if _DATE.match(value):
            return FormFieldDescriptor(label, key, "date")
        if len(value) > TEXTAREA_THRESHOLD:
            return FormFieldDescriptor(label, key, is_textarea=True)
    return FormFieldDescriptor(label, key)


def generate_form_fields_from_object(obj: Mapping[str, Any]) -> List[FormFieldDescriptor]:
    """One descriptor per key of ``obj``, in key order."""
    return [_describe(key, value) for key, value in obj.items()]

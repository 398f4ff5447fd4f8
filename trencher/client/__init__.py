"""
Trencher — Client Package
===========================

Client-side helpers:
    - requests_helper.py:  ApiRequestsHelper / MultipartApiRequestsHelper
    - multipart.py:        prepare_data and the multipart pipeline
    - form_fields.py:      generate_form_fields_from_object
    - urls.py:             build_full_url
"""

from trencher.client.form_fields import FormFieldDescriptor, generate_form_fields_from_object
from trencher.client.multipart import (
    FileAsset,
    FormData,
    NativeFileRef,
    NormalizedFile,
    PickerResult,
    PreparedRequestPayload,
    prepare_data,
    prepare_entity_images,
)
from trencher.client.requests_helper import ApiRequestsHelper, ClientConfig, MultipartApiRequestsHelper
from trencher.client.urls import build_full_url

__all__ = [
    "ApiRequestsHelper",
    "ClientConfig",
    "FileAsset",
    "FormData",
    "FormFieldDescriptor",
    "MultipartApiRequestsHelper",
    "NativeFileRef",
    "NormalizedFile",
    "PickerResult",
    "PreparedRequestPayload",
    "build_full_url",
    "generate_form_fields_from_object",
    "prepare_data",
    "prepare_entity_images",
]

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ImageLocation(BaseModel):
    url: str
    storage_path: str


class ItemRecord(BaseModel):
    job_id: str
    product_name: str
    input_images: list[ImageLocation] = Field(default_factory=list)
    output_images: list[ImageLocation] = Field(default_factory=list)
    processed_at: datetime


class UploadAccepted(BaseModel):
    message: str = "Processing started"
    request_id: str

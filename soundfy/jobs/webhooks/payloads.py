"""
Webhook payload schemas.

Only the fields the jobs read are declared; everything else Shopify sends
is ignored. Ids arrive as bare integers (REST-style payloads) and are
accepted as strings too.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ShopifyId = Union[int, str]


class WebhookImage(BaseModel):
    src: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class VariantPayload(BaseModel):
    id: ShopifyId
    title: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class ProductPayload(BaseModel):
    """products/create and products/update."""
    id: ShopifyId
    title: Optional[str] = None
    status: Optional[str] = None
    image: Optional[WebhookImage] = None
    images: List[WebhookImage] = Field(default_factory=list)
    variants: List[VariantPayload] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @property
    def image_url(self) -> Optional[str]:
        """image.src, else the first of images[].src."""
        if self.image is not None and self.image.src:
            return self.image.src
        if self.images:
            return self.images[0].src
        return None


class CollectionPayload(BaseModel):
    """collections/create and collections/update."""
    id: ShopifyId
    title: str

    model_config = ConfigDict(extra="ignore")


class DeletePayload(BaseModel):
    """products/delete and collections/delete."""
    id: ShopifyId

    model_config = ConfigDict(extra="ignore")

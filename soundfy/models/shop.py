"""
Shop model: the tenant that owns all catalog records.

CRITICAL DESIGN DECISIONS:
- shopify_domain is the canonical Shopify identifier (mystore.myshopify.com)
- shopify_token is encrypted at rest
- Uninstall is a soft operation: the domain is suffixed and the token
  redacted so a reinstall creates a fresh row, old data stays in place
"""

import re
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint
from sqlalchemy.orm import Session, relationship

from soundfy.integrations.shopify.session import ShopifySession
from soundfy.models.base import Base, TimestampMixin, generate_uuid, utcnow
from soundfy.platform.secrets import decrypt_secret, encrypt_secret

REDACTED_TOKEN = "{REDACTED}"
UNINSTALLED_DOMAIN_PATTERN = re.compile(r"_deleted_\d{14}$")


class ShopUninstalledError(Exception):
    """Raised when API credentials are requested for an uninstalled shop."""
    pass


class Shop(Base, TimestampMixin):
    """
    An installed Shopify store.

    SECURITY:
    - shopify_token must be decrypted only when making API calls
    - shopify_domain is unique (one app install per store)
    """

    __tablename__ = "shops"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )
    shopify_domain = Column(
        String(255),
        nullable=False,
        comment="Shopify store domain (mystore.myshopify.com)"
    )
    shopify_token = Column(
        Text,
        nullable=False,
        comment="Encrypted Shopify access token"
    )
    access_scopes = Column(
        Text,
        nullable=False,
        default="",
        comment="Comma separated OAuth scopes"
    )
    uninstalled_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the app was uninstalled"
    )

    products = relationship(
        "Product",
        back_populates="shop",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    variants = relationship(
        "Variant",
        back_populates="shop",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    collections = relationship(
        "Collection",
        back_populates="shop",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("shopify_domain", name="uq_shops_shopify_domain"),
    )

    def __repr__(self) -> str:
        return f"<Shop(id={self.id}, shopify_domain={self.shopify_domain})>"

    @classmethod
    def find_by_domain(cls, db: Session, shopify_domain: str) -> Optional["Shop"]:
        return db.query(cls).filter(cls.shopify_domain == shopify_domain).first()

    def set_access_token(self, access_token: str) -> None:
        """Encrypt and store a new access token."""
        self.shopify_token = encrypt_secret(access_token)

    def shopify_session(self) -> ShopifySession:
        """
        Build the API session for this shop.

        Raises:
            ShopUninstalledError: If the token was redacted on uninstall
            EncryptionError: If the stored token cannot be decrypted
        """
        if self.is_uninstalled or self.shopify_token == REDACTED_TOKEN:
            raise ShopUninstalledError(f"Shop {self.id} is uninstalled")
        return ShopifySession(
            shop_domain=self.shopify_domain,
            access_token=decrypt_secret(self.shopify_token),
        )

    @property
    def is_uninstalled(self) -> bool:
        return bool(self.shopify_domain) and bool(
            UNINSTALLED_DOMAIN_PATTERN.search(self.shopify_domain)
        )

    def uninstall(self, now: Optional[datetime] = None) -> None:
        """
        Soft-uninstall the shop.

        Frees the domain for a future install by suffixing it with
        _deleted_<YYYYMMDDHHMMSS> and redacts the token. Calling it on an
        already uninstalled shop does nothing.
        """
        if self.is_uninstalled:
            return

        now = now or utcnow()
        self.uninstalled_at = now
        self.shopify_domain = f"{self.shopify_domain}_deleted_{now.strftime('%Y%m%d%H%M%S')}"
        self.shopify_token = REDACTED_TOKEN

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.champion.models import Base
from app.champion.utils import iso, utcnow


class SponsorApplication(Base):
    __tablename__ = "sponsor_applications"
    __table_args__ = (
        Index("idx_sponsor_applications_email", "email"),
        Index("idx_sponsor_applications_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(128), nullable=True)
    interested_tier: Mapped[str] = mapped_column(String(32), nullable=False, default="bronze")
    proposed_products: Mapped[str | None] = mapped_column(Text, nullable=True)
    marketing_goals: Mapped[str | None] = mapped_column(Text, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyName": self.company_name,
            "contactPerson": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "website": self.website,
            "industry": self.industry,
            "interestedTier": self.interested_tier,
            "proposedProducts": self.proposed_products,
            "marketingGoals": self.marketing_goals,
            "message": self.message,
            "status": self.status,
            "rejectionReason": self.rejection_reason,
            "adminNotes": self.admin_notes,
            "reviewedAt": iso(self.reviewed_at),
            "reviewedBy": self.reviewed_by_user_id,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class SponsorProfile(Base):
    __tablename__ = "sponsor_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    application_id: Mapped[int | None] = mapped_column(ForeignKey("sponsor_applications.id", ondelete="SET NULL"), nullable=True)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(320), nullable=False)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    logo: Mapped[str | None] = mapped_column(String(512), nullable=True)
    tier: Mapped[str] = mapped_column(String(32), nullable=False, default="bronze")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    total_redemptions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "applicationId": self.application_id,
            "companyName": self.company_name,
            "contactEmail": self.contact_email,
            "website": self.website,
            "logo": self.logo,
            "tier": self.tier,
            "isActive": self.is_active,
            "totalRedemptions": self.total_redemptions,
            "totalRevenue": self.total_revenue,
            "createdAt": iso(self.created_at),
        }


class SponsorOffer(Base):
    __tablename__ = "sponsor_offers"
    __table_args__ = (
        Index("idx_sponsor_offers_sponsor", "sponsor_id"),
        Index("idx_sponsor_offers_status", "status", "is_approved"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sponsor_id: Mapped[int] = mapped_column(ForeignKey("sponsor_profiles.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    points_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    retail_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    achievement_bonus_points: Mapped[int | None] = mapped_column(Integer, nullable=True)

    unlimited_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stock_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_total_redemptions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_redemptions_per_user: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_redemptions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    redemption_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    required_skill_level: Mapped[str | None] = mapped_column(String(32), nullable=True)
    exclusive_to_tier: Mapped[str | None] = mapped_column(String(32), nullable=True)
    terms: Mapped[list | None] = mapped_column(JSON, nullable=True)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT")
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    approved_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    sponsor: Mapped[SponsorProfile] = relationship("SponsorProfile", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sponsorId": self.sponsor_id,
            "sponsor": {"companyName": self.sponsor.company_name, "logo": self.sponsor.logo} if self.sponsor else None,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "imageUrl": self.image_url,
            "pointsCost": self.points_cost,
            "retailValue": self.retail_value,
            "achievementBonusPoints": self.achievement_bonus_points,
            "unlimitedStock": self.unlimited_stock,
            "stockQuantity": self.stock_quantity,
            "maxTotalRedemptions": self.max_total_redemptions,
            "maxRedemptionsPerUser": self.max_redemptions_per_user,
            "currentRedemptions": self.current_redemptions,
            "requiredSkillLevel": self.required_skill_level,
            "exclusiveToTier": self.exclusive_to_tier,
            "terms": self.terms or [],
            "startDate": iso(self.start_date),
            "endDate": iso(self.end_date),
            "status": self.status,
            "isApproved": self.is_approved,
            "approvedAt": iso(self.approved_at),
            "createdAt": iso(self.created_at),
        }


class OfferRedemption(Base):
    __tablename__ = "offer_redemptions"
    __table_args__ = (
        Index("idx_offer_redemptions_user", "user_id"),
        Index("idx_offer_redemptions_offer", "offer_id"),
        Index("idx_offer_redemptions_sponsor", "sponsor_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    offer_id: Mapped[int] = mapped_column(ForeignKey("sponsor_offers.id", ondelete="CASCADE"), nullable=False)
    sponsor_id: Mapped[int] = mapped_column(ForeignKey("sponsor_profiles.id", ondelete="CASCADE"), nullable=False)
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus_points_earned: Mapped[int | None] = mapped_column(Integer, nullable=True)
    retail_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confirmation_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    shipping_address: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    sponsor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    fulfilled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)

    offer: Mapped[SponsorOffer] = relationship("SponsorOffer", lazy="joined")

    def to_dict(self, *, include_offer: bool = True) -> dict:
        d = {
            "id": self.id,
            "userId": self.user_id,
            "offerId": self.offer_id,
            "sponsorId": self.sponsor_id,
            "pointsSpent": self.points_spent,
            "bonusPointsEarned": self.bonus_points_earned,
            "retailValue": self.retail_value,
            "confirmationCode": self.confirmation_code,
            "shippingAddress": self.shipping_address,
            "trackingNumber": self.tracking_number,
            "sponsorNotes": self.sponsor_notes,
            "status": self.status,
            "fulfilledAt": iso(self.fulfilled_at),
            "createdAt": iso(self.created_at),
        }
        if include_offer and self.offer is not None:
            d["offer"] = {
                "id": self.offer.id,
                "title": self.offer.title,
                "imageUrl": self.offer.image_url,
                "sponsor": {
                    "companyName": self.offer.sponsor.company_name,
                    "logo": self.offer.sponsor.logo,
                    "contactEmail": self.offer.sponsor.contact_email,
                },
            }
        return d

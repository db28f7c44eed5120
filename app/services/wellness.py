from sqlalchemy.orm import Session

from app.models.wellness import WellnessHourAward, HourPenalty


def hours_summary(db: Session, user_id: int) -> dict:
    """Awarded hours, penalties and the resulting balance for one student."""
    awards = db.query(WellnessHourAward).filter(
        WellnessHourAward.user_id == user_id,
    ).order_by(WellnessHourAward.awarded_at.desc()).all()
    penalties = db.query(HourPenalty).filter(
        HourPenalty.user_id == user_id,
    ).order_by(HourPenalty.applied_at.desc()).all()

    total_awarded = round(sum(float(a.hours) for a in awards), 1)
    total_penalties = round(sum(float(p.hours) for p in penalties), 1)
    return {
        "userId": str(user_id),
        "totalAwarded": total_awarded,
        "totalPenalties": total_penalties,
        "balance": round(total_awarded - total_penalties, 1),
        "awards": [a.to_dict() for a in awards],
        "penalties": [p.to_dict() for p in penalties],
    }

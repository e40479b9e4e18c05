from mongoengine import DateTimeField, DecimalField, Document, StringField

from utils.time_utils import utc_now


class UtilityRate(Document):
    building_id = StringField(required=True)
    electricity_rate = DecimalField(precision=4, required=True, min_value=0)
    water_rate = DecimalField(precision=4, required=True, min_value=0)
    generator_rate = DecimalField(precision=4, required=True, min_value=0)
    created_at = DateTimeField(default=utc_now)

    meta = {
        "collection": "utility_rates",
        "indexes": [("building_id", "-created_at")],
    }

    @classmethod
    def latest_for_building(cls, building_id):
        return cls.objects(building_id=building_id).order_by("-created_at").first()

    def rate_for(self, utility_type: str):
        return getattr(self, f"{utility_type}_rate")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "building_id": self.building_id,
            "electricity_rate": str(self.electricity_rate),
            "water_rate": str(self.water_rate),
            "generator_rate": str(self.generator_rate),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

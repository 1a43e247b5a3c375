import uuid
from datetime import datetime
from outreach_automation.models import db
from sqlalchemy import JSON


class Contact(db.Model):
    __tablename__ = 'contacts'

    id = db.Column(db.String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), nullable=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    company = db.Column(db.String(255), nullable=True)
    social_profile_url = db.Column(db.String(500), nullable=True)
    social_provider_id = db.Column(db.String(255), nullable=True)  # Unipile's internal provider ID
    phone = db.Column(db.String(50), nullable=True)
    owner_id = db.Column(db.String(64), nullable=True)
    properties_json = db.Column(JSON, nullable=True)  # Free-form fields used for personalization

    # Interaction state, maintained by tracking events
    has_replied = db.Column(db.Boolean, nullable=False, default=False)
    has_opened = db.Column(db.Boolean, nullable=False, default=False)
    has_clicked = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # Maps wire names accepted by the API to column names
    FIELD_ALIASES = {
        'email': 'email',
        'firstName': 'first_name',
        'first_name': 'first_name',
        'lastName': 'last_name',
        'last_name': 'last_name',
        'company': 'company',
        'linkedinUrl': 'social_profile_url',
        'linkedin_url': 'social_profile_url',
        'socialProfileUrl': 'social_profile_url',
        'social_profile_url': 'social_profile_url',
        'phone': 'phone',
        'ownerId': 'owner_id',
        'owner_id': 'owner_id',
    }

    @classmethod
    def from_payload(cls, data):
        """Build a contact from an API payload; unknown keys become properties."""
        contact = cls()
        if data.get('id'):
            contact.id = str(data['id'])
        contact.update_from_payload(data)
        return contact

    def update_from_payload(self, data):
        properties = dict(self.properties_json or {})
        for key, value in data.items():
            if key == 'id':
                continue
            column = self.FIELD_ALIASES.get(key)
            if column:
                setattr(self, column, value)
            elif key in ('hasReplied', 'hasOpened', 'hasClicked'):
                setattr(self, 'has_' + key[3:].lower(), bool(value))
            else:
                properties[key] = value
        self.properties_json = properties

    @property
    def full_name(self):
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        elif self.first_name:
            return self.first_name
        elif self.last_name:
            return self.last_name
        return "Unknown"

    def to_record(self):
        """The personalization record: free-form properties overlaid by known fields."""
        record = dict(self.properties_json or {})
        known = {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'company': self.company,
            'linkedinUrl': self.social_profile_url,
            'phone': self.phone,
            'ownerId': self.owner_id,
        }
        record.update({key: value for key, value in known.items() if value is not None})
        return record

    def interaction_state(self):
        from outreach_automation.services.sequence_engine.conditions import InteractionState
        return InteractionState(
            has_replied=bool(self.has_replied),
            has_opened=bool(self.has_opened),
            has_clicked=bool(self.has_clicked),
        )

    def to_dict(self):
        return {
            'id': str(self.id),
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'company': self.company,
            'social_profile_url': self.social_profile_url,
            'social_provider_id': self.social_provider_id,
            'phone': self.phone,
            'owner_id': self.owner_id,
            'properties': self.properties_json or {},
            'has_replied': self.has_replied,
            'has_opened': self.has_opened,
            'has_clicked': self.has_clicked,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<Contact {self.full_name} ({self.email})>'

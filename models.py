# models.py
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint, create_engine
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import Config

Base = declarative_base()

engine = None
SessionLocal = sessionmaker(expire_on_commit=False)


class RequestStatus:
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'


class SigningRequest(Base):
    __tablename__ = 'signing_request'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(120), nullable=False, index=True)
    # Document source: a template definition slug or an uploaded file id
    document_template_slug = Column(String(120))
    uploaded_file_id = Column(String(64))
    filled_values = Column(JSON, nullable=False, default=dict)
    roles = Column(JSON, nullable=False, default=list)
    tab_map = Column(JSON, nullable=False, default=list)
    docusign_friendly = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=RequestStatus.PENDING, index=True)
    error_message = Column(Text)
    generated_pdf_path = Column(String(500))
    docusign_template_id = Column(String(100))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'document_template_slug': self.document_template_slug,
            'uploaded_file_id': self.uploaded_file_id,
            'filled_values': self.filled_values,
            'roles': self.roles,
            'tab_map': self.tab_map,
            'docusign_friendly': self.docusign_friendly,
            'status': self.status,
            'error_message': self.error_message,
            'generated_pdf_path': self.generated_pdf_path,
            'docusign_template_id': self.docusign_template_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<SigningRequest {self.id} {self.status}>'


class DocuSignAccount(Base):
    __tablename__ = 'docusign_account'
    __table_args__ = (
        UniqueConstraint('user_id', 'provider_account_id', name='uq_docusign_account_user'),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(120), nullable=False, index=True)
    provider_account_id = Column(String(100), nullable=False)
    access_token = Column(Text)
    refresh_token = Column(Text)
    expires_at = Column(DateTime)
    base_url = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<DocuSignAccount {self.provider_account_id} user={self.user_id}>'


def init_engine(url=None, **kwargs):
    """Create the engine and bind the session factory to it."""
    global engine
    url = url or Config.SQLALCHEMY_DATABASE_URI
    if url == 'sqlite://' or (url.startswith('sqlite') and ':memory:' in url):
        # One shared connection so every session sees the same in-memory database
        kwargs.setdefault('connect_args', {'check_same_thread': False})
        kwargs.setdefault('poolclass', StaticPool)
    engine = create_engine(url, **kwargs)
    SessionLocal.configure(bind=engine)
    return engine


def create_all():
    if engine is None:
        init_engine()
    Base.metadata.create_all(engine)


def get_session():
    if engine is None:
        init_engine()
    return SessionLocal()

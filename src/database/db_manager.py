# database/db_manager.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash
import os  # Import os for path handling
import logging
from datetime import datetime
from sqlalchemy import ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.engine import make_url

# Initialize the SQLAlchemy object
db = SQLAlchemy()
logger = logging.getLogger(__name__)


friendships = db.Table(
    'friendships',
    db.Column('user_id', db.Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    db.Column('friend_id', db.Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
)


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    password_hash = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    # Track document the user is listening to; empty dict when idle
    currently_listening = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    friends = relationship(
        'User',
        secondary=friendships,
        primaryjoin=id == friendships.c.user_id,
        secondaryjoin=id == friendships.c.friend_id,
        lazy='selectin',
    )
    playlists = relationship(
        "Playlist",
        back_populates="owner",
        cascade="all, delete-orphan",
        lazy=True,
    )
    stats = relationship(
        "ListeningStat",
        back_populates="owner",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def get_id(self) -> str:
        return str(self.id)

    def add_friend(self, other: "User") -> None:
        """Befriend both ways; friendship is symmetric."""
        if other.id == self.id:
            return
        if other not in self.friends:
            self.friends.append(other)
        if self not in other.friends:
            other.friends.append(self)

    @property
    def friend_usernames(self) -> list[str]:
        return [friend.username for friend in self.friends]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "currently_listening": self.currently_listening or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<User {self.username}>"


# --- Track documents ---
class LocalSong(db.Model):
    """Track uploaded by an artist and served from local storage."""

    __tablename__ = 'local_songs'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    artist = db.Column(db.String(255), nullable=False)
    uri = db.Column(db.String(500), unique=True, nullable=False)
    cover_img_url = db.Column(db.String(500), nullable=True)
    duration_ms = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_track_document(self) -> dict:
        return {
            'id': str(self.id),
            'uri': self.uri,
            'name': self.name,
            'artists': [self.artist],
            'duration_ms': self.duration_ms,
            'cover_img_url': self.cover_img_url,
            'is_local': True,
        }


class Playlist(db.Model):
    __tablename__ = 'playlists'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    visibility = db.Column(db.String(16), nullable=False, default='private')
    cover_img_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    owner = relationship('User', back_populates='playlists')
    entries = relationship(
        'PlaylistTrack',
        back_populates='playlist',
        order_by='PlaylistTrack.position',
        cascade='all, delete-orphan',
        lazy='selectin',
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='uq_playlist_name_per_user'),
        CheckConstraint("visibility IN ('public', 'private')", name='ck_playlists_visibility'),
    )

    def has_uri(self, uri: str) -> bool:
        return any(entry.uri == uri for entry in self.entries)

    def to_dict(self, *, include_tracks: bool = False) -> dict:
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'owner': self.owner.username if self.owner else None,
            'name': self.name,
            'description': self.description,
            'visibility': self.visibility,
            'cover_img_url': self.cover_img_url,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'track_count': len(self.entries or []),
        }
        if include_tracks:
            data['songs'] = [entry.track_snapshot for entry in self.entries]
        return data


class PlaylistTrack(db.Model):
    __tablename__ = 'playlist_tracks'

    id = db.Column(db.Integer, primary_key=True)
    playlist_id = db.Column(
        db.Integer,
        ForeignKey('playlists.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    uri = db.Column(db.String(500), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    added_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    track_snapshot = db.Column(db.JSON, nullable=False)

    playlist = relationship('Playlist', back_populates='entries')

    __table_args__ = (
        UniqueConstraint('playlist_id', 'uri', name='uq_playlist_track_once'),
    )


# --- Parties ---
class Party(db.Model):
    __tablename__ = 'parties'

    id = db.Column(db.Integer, primary_key=True)
    host_id = db.Column(db.Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    dj_mode = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    host = relationship('User')
    members = relationship(
        'PartyMember',
        back_populates='party',
        cascade='all, delete-orphan',
        lazy='selectin',
    )
    songs = relationship(
        'PartySong',
        back_populates='party',
        order_by='PartySong.position',
        cascade='all, delete-orphan',
        lazy='selectin',
    )

    @property
    def people(self) -> list[str]:
        return [member.username for member in self.members]

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'host': self.host.username if self.host else None,
            'name': self.name,
            'dj_mode': self.dj_mode,
            'people': self.people,
            'songs': [song.track_snapshot for song in self.songs],
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class PartyMember(db.Model):
    __tablename__ = 'party_members'

    id = db.Column(db.Integer, primary_key=True)
    party_id = db.Column(db.Integer, ForeignKey('parties.id', ondelete='CASCADE'), nullable=False, index=True)
    # A user can be a member of at most one live party
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    party = relationship('Party', back_populates='members')


class PartySong(db.Model):
    __tablename__ = 'party_songs'

    id = db.Column(db.Integer, primary_key=True)
    party_id = db.Column(db.Integer, ForeignKey('parties.id', ondelete='CASCADE'), nullable=False, index=True)
    uri = db.Column(db.String(500), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    track_snapshot = db.Column(db.JSON, nullable=False)
    added_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    party = relationship('Party', back_populates='songs')


# --- Listening stats ---
class ListeningStat(db.Model):
    __tablename__ = 'listening_stats'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)
    key = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    cover_img_url = db.Column(db.String(500), nullable=True)
    count = db.Column(db.Integer, nullable=False, default=0)

    owner = relationship('User', back_populates='stats')

    __table_args__ = (
        UniqueConstraint('user_id', 'kind', 'key', name='uq_listening_stat_key'),
        CheckConstraint("kind IN ('artist', 'genre', 'track')", name='ck_listening_stats_kind'),
    )

    def to_dict(self) -> dict:
        return {
            'kind': self.kind,
            'id': self.key,
            'name': self.name,
            'cover_img_url': self.cover_img_url,
            'count': self.count,
        }


def find_user(username: str) -> User | None:
    if not username:
        return None
    return User.query.filter_by(username=username).first()


def initialize_database(app):
    """
    Initializes the SQLAlchemy extension with the Flask app instance
    and creates all database tables if they don't already exist.
    """
    db.init_app(app)
    # Ensure the instance folder exists for SQLite database file
    instance_path = app.instance_path
    if not os.path.exists(instance_path):
        os.makedirs(instance_path)
        logger.info("Created instance folder: %s", instance_path)

    # Ensure the directory for the configured SQLite file exists
    try:
        uri = app.config.get('SQLALCHEMY_DATABASE_URI')
        if uri:
            url = make_url(uri)
            # Only handle file-based SQLite (not :memory:)
            if url.get_backend_name() == 'sqlite' and url.database and url.database != ':memory:':
                db_dir = os.path.dirname(url.database)
                if db_dir and not os.path.exists(db_dir):
                    os.makedirs(db_dir, exist_ok=True)
                    logger.info("Created SQLite DB directory: %s", db_dir)
    except Exception as e:
        # Don't block app startup on path parsing issues; log and continue
        logger.warning("Could not ensure SQLite directory exists: %s", e)

    with app.app_context():
        db.create_all()
        logger.info("Database tables created or already exist.")

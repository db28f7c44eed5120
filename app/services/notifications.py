import json
import logging
import ssl
import threading
from pathlib import Path
from typing import Optional, Dict, List
from datetime import datetime
import paho.mqtt.client as mqtt
from sqlalchemy import event
from sqlalchemy.orm import Session
from app.config import settings
from app.models.notification import Notification
from app.utils.timezone import now_local

logger = logging.getLogger(__name__)

OUTBOX_KEY = "notification_outbox"


class NotificationService:
    """Stores user notifications and pushes them over MQTT once committed.

    Rows are added inside the caller's unit of work; the MQTT publish happens
    only after that unit commits, so a rolled-back operation never notifies.
    """

    def __init__(self):
        self.client: Optional[mqtt.Client] = None
        self.is_connected = False
        self._lock = threading.Lock()

    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client connects to broker."""
        if not reason_code.is_failure:
            self.is_connected = True
            logger.info(f"MQTT client connected to {settings.mqtt_broker}:{settings.mqtt_port}")
        else:
            logger.error(f"MQTT connection failed with code {reason_code}")
            self.is_connected = False

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client disconnects from broker."""
        self.is_connected = False
        if reason_code.is_failure:
            logger.warning(f"MQTT client disconnected unexpectedly (rc={reason_code})")
        else:
            logger.info("MQTT client disconnected")

    def push(
        self,
        db: Session,
        user_id: int,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict] = None,
        now: Optional[datetime] = None,
    ) -> Notification:
        """Record a notification in the current unit of work and queue its publish."""
        created_at = now or now_local()
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data=data or {},
            is_read=False,
            created_at=created_at,
        )
        db.add(notification)
        db.info.setdefault(OUTBOX_KEY, []).append({
            "userId": str(user_id),
            "type": type,
            "title": title,
            "message": message,
            "data": data or {},
            "createdAt": created_at.isoformat(),
        })
        return notification

    def publish(self, payload: Dict):
        """Publish one notification payload to the user's topic."""
        topic = settings.mqtt_notification_topic_format.format(user_id=payload["userId"])
        if not (self.client and self.is_connected):
            logger.debug(f"MQTT not connected, notification for {topic} kept in database only")
            return
        try:
            result = self.client.publish(topic, json.dumps(payload), qos=1)
            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                logger.info(f"Notification '{payload['type']}' sent to {topic}")
            else:
                logger.error(f"Failed to send notification to {topic}: rc={result.rc}")
        except Exception as e:
            logger.error(f"Error publishing notification: {e}", exc_info=True)

    def flush_outbox(self, db: Session):
        pending: List[Dict] = db.info.pop(OUTBOX_KEY, [])
        for payload in pending:
            self.publish(payload)

    def discard_outbox(self, db: Session):
        dropped = db.info.pop(OUTBOX_KEY, [])
        if dropped:
            logger.debug(f"Discarded {len(dropped)} notification(s) after rollback")

    def _setup_tls(self):
        """Configure TLS/SSL for MQTT client."""
        if not settings.mqtt_use_tls:
            return

        try:
            context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

            if settings.mqtt_ca_cert:
                ca_cert_path = Path(settings.mqtt_ca_cert)
                if not ca_cert_path.exists():
                    logger.error(f"CA certificate file not found: {ca_cert_path}")
                    raise FileNotFoundError(f"CA certificate file not found: {ca_cert_path}")
                context.load_verify_locations(cafile=str(ca_cert_path))
                logger.info(f"Loaded CA certificate from {ca_cert_path}")
            else:
                context.load_default_certs()
                logger.info("Using system default CA certificates")

            # Mutual TLS
            if settings.mqtt_client_cert and settings.mqtt_client_key:
                client_cert_path = Path(settings.mqtt_client_cert)
                client_key_path = Path(settings.mqtt_client_key)
                for path in (client_cert_path, client_key_path):
                    if not path.exists():
                        logger.error(f"Client TLS file not found: {path}")
                        raise FileNotFoundError(f"Client TLS file not found: {path}")
                context.load_cert_chain(certfile=str(client_cert_path), keyfile=str(client_key_path))
                logger.info(f"Loaded client certificate from {client_cert_path}")

            if settings.mqtt_tls_insecure:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
                logger.warning("TLS insecure mode enabled - certificate verification disabled (not recommended for production)")
            else:
                context.check_hostname = True
                context.verify_mode = ssl.CERT_REQUIRED

            self.client.tls_set_context(context)
            logger.info("TLS/SSL configured for MQTT connection")

        except Exception as e:
            logger.error(f"Error setting up TLS for MQTT: {e}", exc_info=True)
            raise

    def connect(self):
        """Connect to MQTT broker with optional TLS/SSL support."""
        if not settings.mqtt_enabled:
            logger.info("MQTT disabled, notifications are stored in the database only")
            return
        try:
            with self._lock:
                if self.client and self.is_connected:
                    logger.info("MQTT client already connected")
                    return

                client_id = f"wellness-loans-{threading.current_thread().ident}"
                self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)
                self.client.on_connect = self.on_connect
                self.client.on_disconnect = self.on_disconnect

                if settings.mqtt_use_tls:
                    self._setup_tls()
                    if settings.mqtt_port == 1883:
                        logger.warning("TLS enabled but port is 1883. Consider using port 8883 for MQTT over TLS.")

                if settings.mqtt_username and settings.mqtt_password:
                    self.client.username_pw_set(settings.mqtt_username, settings.mqtt_password)

                protocol = "TLS" if settings.mqtt_use_tls else "TCP"
                logger.info(f"Connecting to MQTT broker at {settings.mqtt_broker}:{settings.mqtt_port} over {protocol}")
                try:
                    self.client.connect(settings.mqtt_broker, settings.mqtt_port, keepalive=60)
                except Exception as conn_error:
                    logger.warning(f"Initial MQTT connection failed: {conn_error}. The service will retry automatically.")
                # Network loop in a separate thread, handles reconnection attempts
                self.client.loop_start()

        except Exception as e:
            logger.error(f"Error setting up MQTT client: {e}", exc_info=True)
            self.is_connected = False

    def disconnect(self):
        """Disconnect from MQTT broker."""
        try:
            with self._lock:
                if self.client:
                    self.client.loop_stop()
                    self.client.disconnect()
                    self.is_connected = False
                    logger.info("MQTT client disconnected")
        except Exception as e:
            logger.error(f"Error disconnecting from MQTT broker: {e}", exc_info=True)

    def is_running(self) -> bool:
        return self.is_connected and self.client is not None


notification_service = NotificationService()


@event.listens_for(Session, "after_commit")
def _publish_after_commit(session):
    notification_service.flush_outbox(session)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session):
    notification_service.discard_outbox(session)

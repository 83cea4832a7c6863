import datetime
import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Union

# Logger dedicato per gli eventi di sicurezza
security_logger = logging.getLogger('security_logger')
security_logger.setLevel(logging.INFO)

log_formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

DETAILS_SEPARATOR = " | Details: "


def setup_security_logging(log_file: Union[str, Path], max_bytes: int = 1024 * 1024,
                           backup_count: int = 5) -> RotatingFileHandler:
    """
    Installa il gestore di file a rotazione per gli eventi di sicurezza.

    Chiamate ripetute con lo stesso file non aggiungono gestori duplicati.
    """
    log_file = Path(log_file).absolute()
    for handler in security_logger.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_file:
            return handler

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
    handler.setFormatter(log_formatter)
    security_logger.addHandler(handler)
    return handler


class SecurityEvent:
    """Definisce le costanti per i diversi tipi di eventi di sicurezza."""
    PRIVATE_KEY_GENERATED = "PRIVATE_KEY_GENERATED"
    CERTIFICATE_FIRST_SEEN = "CERTIFICATE_FIRST_SEEN"
    CERTIFICATE_TRUSTED = "CERTIFICATE_TRUSTED"
    CERTIFICATE_REJECTED = "CERTIFICATE_REJECTED"
    CERTIFICATE_ISSUED = "CERTIFICATE_ISSUED"
    CERTIFICATE_REVOKED = "CERTIFICATE_REVOKED"
    VERIFICATION_SUCCESS = "VERIFICATION_SUCCESS"
    VERIFICATION_FAILURE = "VERIFICATION_FAILURE"
    ALERT_REPEATED_VERIFICATION_FAILURE = "ALERT_REPEATED_VERIFICATION_FAILURE"


class SecurityMonitor:
    """
    Una semplice utility per il monitoraggio e la registrazione della sicurezza.
    Traccia transizioni di fiducia, emissioni, revoche ed esiti di verifica.
    """

    @staticmethod
    def log_event(event_type: str, details: Dict) -> None:
        """
        Registra un evento di sicurezza con dettagli strutturati.

        Args:
            event_type (str): Il tipo di evento (dalla classe SecurityEvent).
            details (dict): Informazioni rilevanti sull'evento, ad esempio
                            'thumbprint', 'subject', 'reason'.
        """
        payload = json.dumps(details, sort_keys=True, default=str)
        security_logger.info(f"Event: {event_type}{DETAILS_SEPARATOR}{payload}")

    @staticmethod
    def check_for_alerts(log_file_path: Union[str, Path], threshold: int = 3,
                         window_minutes: int = 5,
                         now: Optional[datetime.datetime] = None) -> Dict[str, int]:
        """
        Segnala i certificati che hanno fallito la verifica ripetutamente.

        Args:
            log_file_path: File di log degli eventi di sicurezza
            threshold: Numero di fallimenti che genera un avviso
            window_minutes: Finestra temporale considerata
            now: Istante di riferimento (default: ora locale)

        Returns:
            Thumbprint con il relativo numero di fallimenti oltre soglia
        """
        recent_failures: Dict[str, int] = {}
        window_start = (now or datetime.datetime.now()) - datetime.timedelta(minutes=window_minutes)

        try:
            with open(log_file_path, 'r', encoding='utf-8') as f:
                for line in f:
                    if SecurityEvent.VERIFICATION_FAILURE not in line or DETAILS_SEPARATOR not in line:
                        continue
                    try:
                        timestamp_str = line.split(' - ')[0]
                        event_time = datetime.datetime.strptime(timestamp_str, '%Y-%m-%d %H:%M:%S,%f')
                        details = json.loads(line.split(DETAILS_SEPARATOR, 1)[1])
                    except (ValueError, IndexError):
                        continue  # righe malformate
                    thumbprint = details.get("thumbprint")
                    if thumbprint and event_time > window_start:
                        recent_failures[thumbprint] = recent_failures.get(thumbprint, 0) + 1
        except FileNotFoundError:
            return {}

        alerts = {thumbprint: count for thumbprint, count in recent_failures.items() if count >= threshold}
        for thumbprint, count in alerts.items():
            SecurityMonitor.log_event(
                SecurityEvent.ALERT_REPEATED_VERIFICATION_FAILURE,
                {"thumbprint": thumbprint, "failed_attempts": count},
            )
        return alerts

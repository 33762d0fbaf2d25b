"""
Health checks and monitoring with Prometheus metrics
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response
import time
import psutil
import structlog
from sqlalchemy import func
from sqlmodel import select

from studybuddy.db import get_session
from studybuddy.models import Document, Quiz

logger = structlog.get_logger()

# Prometheus metrics
REQUEST_COUNT = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])
TOTAL_DOCUMENTS = Gauge('documents_total', 'Number of uploaded documents')
TOTAL_QUIZZES = Gauge('quizzes_total', 'Number of stored quizzes')
AI_GENERATION_REQUESTS = Counter('ai_generation_requests_total', 'Total AI generation requests', ['type', 'status'])
NORMALIZED_RECORDS = Counter('normalized_records_total', 'Records returned by generation calls', ['type'])


def record_generation(kind: str, status: str, records: int = 0) -> None:
    """Count one generation call outcome: success, empty or upstream_error."""
    AI_GENERATION_REQUESTS.labels(type=kind, status=status).inc()
    if records:
        NORMALIZED_RECORDS.labels(type=kind).inc(records)


class HealthChecker:
    def __init__(self):
        self.start_time = time.time()

    def check_database(self) -> dict:
        """Check database connectivity and health"""
        try:
            session = next(get_session())
            session.exec(select(Document).limit(1)).all()
            session.close()

            return {
                "status": "healthy",
                "message": "Database connection successful"
            }
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "message": f"Database connection failed: {str(e)}"
            }

    def get_system_metrics(self) -> dict:
        """Get system resource metrics"""
        try:
            cpu_percent = psutil.cpu_percent(interval=None)
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')

            return {
                "cpu_percent": cpu_percent,
                "memory_percent": memory.percent,
                "memory_available_gb": round(memory.available / (1024**3), 2),
                "disk_percent": disk.percent,
                "disk_free_gb": round(disk.free / (1024**3), 2),
                "uptime_seconds": time.time() - self.start_time
            }
        except Exception as e:
            logger.error(f"System metrics collection failed: {e}")
            return {"error": str(e)}

    def get_application_metrics(self) -> dict:
        """Get application-specific metrics"""
        try:
            session = next(get_session())
            documents = session.exec(select(func.count()).select_from(Document)).one()
            quizzes = session.exec(select(func.count()).select_from(Quiz)).one()
            session.close()

            TOTAL_DOCUMENTS.set(documents)
            TOTAL_QUIZZES.set(quizzes)

            return {
                "documents": documents,
                "quizzes": quizzes
            }
        except Exception as e:
            logger.error(f"Application metrics collection failed: {e}")
            return {"error": str(e)}

    def get_health_status(self) -> dict:
        """Get overall health status"""
        checks = {
            "database": self.check_database()
        }

        system_metrics = self.get_system_metrics()
        app_metrics = self.get_application_metrics()

        unhealthy_checks = [name for name, check in checks.items() if check["status"] == "unhealthy"]
        overall_status = "healthy" if not unhealthy_checks else "unhealthy"

        return {
            "status": overall_status,
            "timestamp": time.time(),
            "checks": checks,
            "system_metrics": system_metrics,
            "application_metrics": app_metrics,
            "unhealthy_components": unhealthy_checks
        }


# Global health checker instance
health_checker = HealthChecker()


def get_metrics():
    """Get Prometheus metrics"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

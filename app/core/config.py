import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./agency_auth.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ✅ Frontend (confirmation links)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

# ✅ GST registry (automated verification)
GST_REGISTRY_URL = os.getenv("GST_REGISTRY_URL")
GST_REGISTRY_API_KEY = os.getenv("GST_REGISTRY_API_KEY")
GST_REGISTRY_TIMEOUT_SECONDS = float(os.getenv("GST_REGISTRY_TIMEOUT_SECONDS", "10"))

# ✅ Authorization policy windows
CLIENT_CONFIRMATION_WINDOW_DAYS = int(os.getenv("CLIENT_CONFIRMATION_WINDOW_DAYS", "7"))
EXPIRY_REMINDER_DAYS = int(os.getenv("EXPIRY_REMINDER_DAYS", "15"))
REMINDER_RESEND_DAYS = int(os.getenv("REMINDER_RESEND_DAYS", "7"))

# ✅ Notifications
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
NOTIFICATION_WEBHOOK_SECRET = os.getenv("NOTIFICATION_WEBHOOK_SECRET")

# User-facing texts. Kept in one place so the API layer and tests agree.

PERSIST_FAILED = "We could not save your details. Please try again."
OTP_ISSUE_FAILED = "We could not send the confirmation code. Please try again."
OTP_VERIFY_FAILED = "The code is incorrect or has expired. Check it or request a new one."
OTP_RESEND_COOLDOWN = "You can request a new code in {seconds} s."
BUSY = "Please wait, the previous action is still in progress."

SKIP_CONFIRMATION = (
    "Attaching a bank statement improves the chances of approval. "
    "Continue without it?"
)

STATEMENT_STALE = "The statement appears to be outdated. Please upload a current one."
STATEMENT_GENERIC = "We could not process the statement. You may continue without it."
STATEMENT_VERIFIED = "Statement verified."

DOCUMENT_REQUIRED = "Attach a single PDF file."
DOCUMENT_NOT_PDF = "Only PDF files are accepted."
DOCUMENT_TOO_LARGE = "The file is larger than {limit_mb} MB."
DOCUMENT_EMPTY = "The file is empty."

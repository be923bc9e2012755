"""Static metadata describing ScholarQuiz."""

APP_NAME = "ScholarQuiz"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ScholarQuiz is the quiz engine of an exam-preparation client. It runs timed exams "
    "and untimed practice or study sessions over past questions, with an offline cache "
    "for when the question server cannot be reached."
)

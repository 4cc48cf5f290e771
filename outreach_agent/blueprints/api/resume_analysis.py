from datetime import datetime, timezone

from flask import current_app, jsonify, request
from outreach_agent.blueprints.api import api_bp
from outreach_agent.services.background_loop import run_async
from outreach_agent.services.resume_rag import get_resume_rag_service
from outreach_agent.services.resume_rag.service import resume_doc_id
import logging

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB
USER_ID_HEADER = "X-User-Id"
UPLOAD_SUGGESTION = "Upload a resume first using POST /api/resume/upload"

# Ingestion step -> (HTTP status, error code)
STEP_ERRORS = {
    "extraction": (422, "EXTRACTION_FAILED"),
    "validation": (400, "INVALID_DOCUMENT"),
    "parsing": (422, "PARSING_FAILED"),
    "saving": (500, "STORAGE_FAILED"),
    "indexing": (500, "INDEXING_FAILED"),
}


def _get_service():
    """Service injected by the app (tests) or the process-wide instance."""
    service = current_app.config.get("RESUME_RAG_SERVICE")
    if service is None:
        service = get_resume_rag_service(current_app._get_current_object())
    return service


def _current_user_id():
    # Authentication happens upstream; the gateway forwards the subject here
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    return user_id or None


def _unauthenticated():
    return (
        jsonify(
            {
                "status": "error",
                "error": "User not authenticated",
                "code": "UNAUTHENTICATED",
            }
        ),
        401,
    )


def _analysis_status(result):
    return 404 if result.get("kind") == "NoContext" else 500


def _parse_top_k(value):
    if value in (None, ""):
        return None
    top_k = int(value)
    if top_k <= 0:
        raise ValueError("topK must be positive")
    return top_k


@api_bp.route("/resume/upload", methods=["POST"])
def upload_resume():
    """Upload a PDF resume: extract -> validate -> index + parse -> store"""
    try:
        user_id = _current_user_id()
        if not user_id:
            return _unauthenticated()

        if "resume" not in request.files or request.files["resume"].filename == "":
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": "No file uploaded. Please upload a PDF resume.",
                        "code": "NO_FILE",
                    }
                ),
                400,
            )

        file = request.files["resume"]
        if file.mimetype != "application/pdf":
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": "Only PDF files are allowed",
                        "code": "UNSUPPORTED_MEDIA_TYPE",
                    }
                ),
                415,
            )

        # Read one byte past the limit so oversized files are detected without
        # buffering them completely
        payload = file.read(MAX_UPLOAD_BYTES + 1)
        if len(payload) > MAX_UPLOAD_BYTES:
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": "File too large. Maximum size is 10MB.",
                        "code": "FILE_TOO_LARGE",
                    }
                ),
                413,
            )

        logger.info(
            f"Resume upload received user_id={user_id} file={file.filename} bytes={len(payload)}"
        )
        result = run_async(_get_service().ingest(user_id, payload))

        if not result.get("success"):
            status, code = STEP_ERRORS.get(result.get("step"), (500, "UNKNOWN_ERROR"))
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": result.get("error"),
                        "code": code,
                        "step": result.get("step"),
                        "details": result.get("details"),
                    }
                ),
                status,
            )

        profile = result.get("profile") or {}
        body = {
            "status": "success",
            "doc_id": result["docId"],
            "message": "Resume uploaded, validated, and indexed successfully",
            "data": {
                "fullName": profile.get("fullName"),
                "currentRole": profile.get("currentRole"),
                "yearsOfExperience": profile.get("yearsOfExperience"),
                "skillCount": len(profile.get("skills") or []),
                "experienceCount": len(profile.get("experiences") or []),
            },
            "metadata": {
                **result.get("metadata", {}),
                "chunksIndexed": result.get("chunksIndexed"),
                "chunkStats": result.get("stats"),
                "originalFilename": file.filename,
                "fileSize": len(payload),
                "uploadedAt": datetime.now(timezone.utc).isoformat(),
            },
        }
        if result.get("profileError"):
            body["warning"] = result["profileError"]
        return jsonify(body)

    except Exception as e:
        logger.exception(f"Resume upload failed: {str(e)}")
        return (
            jsonify(
                {
                    "status": "error",
                    "error": "Failed to process resume upload",
                    "code": "INTERNAL_ERROR",
                }
            ),
            500,
        )


@api_bp.route("/resume/analyze", methods=["POST"])
@api_bp.route("/resume/analyze/<doc_id>", methods=["POST"])
def analyze_resume(doc_id=None):
    """Structured analysis of a resume, optionally against a job description"""
    try:
        data = request.get_json(silent=True) or {}
        user_id = _current_user_id()
        job_description = data.get("jobDescription") or data.get("job_description")
        doc_id = (
            doc_id
            or data.get("doc_id")
            or (resume_doc_id(user_id) if user_id else None)
        )
        try:
            top_k = _parse_top_k(data.get("topK"))
        except (TypeError, ValueError):
            return jsonify({"status": "error", "error": "topK must be a positive integer"}), 400

        service = _get_service()
        if doc_id and not run_async(service.exists(doc_id)):
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": f"Document not found: {doc_id}",
                        "code": "DOCUMENT_NOT_FOUND",
                        "suggestion": UPLOAD_SUGGESTION,
                    }
                ),
                404,
            )

        result = run_async(
            service.analyze(
                user_id=user_id,
                doc_id=doc_id,
                query=data.get("query"),
                job_description=job_description,
                top_k=top_k,
            )
        )
        if not result.get("success"):
            status = _analysis_status(result)
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": result.get("error"),
                        "code": "DOCUMENT_NOT_FOUND" if status == 404 else "ANALYSIS_FAILED",
                    }
                ),
                status,
            )

        return jsonify(
            {
                "status": "success",
                "doc_id": doc_id,
                "analysis": result["data"],
                "metadata": result["metadata"],
            }
        )

    except Exception as e:
        logger.exception(f"Resume analysis failed: {str(e)}")
        return (
            jsonify(
                {
                    "status": "error",
                    "error": "Failed to analyze resume",
                    "code": "INTERNAL_ERROR",
                }
            ),
            500,
        )


@api_bp.route("/resume/skills-match", methods=["POST"])
def skills_match():
    """Check which required skills appear in the candidate's resume"""
    try:
        data = request.get_json(silent=True) or {}
        required_skills = data.get("requiredSkills")
        if not isinstance(required_skills, list) or not required_skills:
            return jsonify({"success": False, "error": "requiredSkills array is required"}), 400

        result = run_async(
            _get_service().skill_match(
                required_skills, user_id=_current_user_id(), doc_id=data.get("doc_id")
            )
        )
        return jsonify({"success": True, "skillAnalysis": result})

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception(f"Skill match failed: {str(e)}")
        return jsonify({"success": False, "error": "Failed to analyze skills"}), 500


@api_bp.route("/resume/job-fit", methods=["POST"])
def job_fit():
    """Fit analysis against a specific job"""
    try:
        data = request.get_json(silent=True) or {}
        job_description = data.get("jobDescription")
        if not job_description:
            return jsonify({"success": False, "error": "jobDescription is required"}), 400

        result = run_async(
            _get_service().analyze_job_fit(
                job_description,
                user_id=_current_user_id(),
                doc_id=data.get("doc_id"),
                job_title=data.get("jobTitle"),
                required_skills=data.get("requiredSkills"),
                preferred_skills=data.get("preferredSkills"),
            )
        )
        if not result.get("success"):
            return jsonify(result), _analysis_status(result)
        return jsonify(result)

    except Exception as e:
        logger.exception(f"Job fit analysis failed: {str(e)}")
        return jsonify({"success": False, "error": "Failed to analyze job fit"}), 500


@api_bp.route("/resume/red-flags", methods=["GET"])
def red_flags():
    """Potential concerns and red flags in the resume"""
    try:
        result = run_async(
            _get_service().get_red_flags(
                user_id=_current_user_id(), doc_id=request.args.get("doc_id")
            )
        )
        if not result.get("success"):
            return jsonify(result), _analysis_status(result)
        return jsonify(result)

    except Exception as e:
        logger.exception(f"Red flags analysis failed: {str(e)}")
        return jsonify({"success": False, "error": "Failed to analyze red flags"}), 500


@api_bp.route("/resume/query", methods=["POST"])
def query_resume():
    """Free-form question answered from the resume"""
    try:
        data = request.get_json(silent=True) or {}
        query = data.get("query")
        if not query:
            return jsonify({"success": False, "error": "query is required"}), 400

        result = run_async(_get_service().query(_current_user_id(), query))
        return jsonify(
            {
                "success": result.get("success", False),
                "query": query,
                "analysis": result.get("data"),
                "error": result.get("error"),
            }
        )

    except Exception as e:
        logger.exception(f"Resume query failed: {str(e)}")
        return jsonify({"success": False, "error": "Failed to process query"}), 500


@api_bp.route("/resume/profile", methods=["GET"])
def get_resume_profile():
    """Parsed resume profile stored at upload time"""
    try:
        user_id = _current_user_id()
        if not user_id:
            return _unauthenticated()

        profile = run_async(_get_service().get_profile(user_id))
        if profile is None:
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": "No resume profile found",
                        "code": "PROFILE_NOT_FOUND",
                        "suggestion": UPLOAD_SUGGESTION,
                    }
                ),
                404,
            )
        return jsonify({"status": "success", "profile": profile})

    except Exception as e:
        logger.exception(f"Failed to load resume profile: {str(e)}")
        return jsonify({"status": "error", "error": "Failed to load profile"}), 500


@api_bp.route("/resume/<doc_id>", methods=["DELETE"])
def delete_resume_document(doc_id):
    """Remove every indexed chunk of a document"""
    try:
        service = _get_service()
        if not run_async(service.exists(doc_id)):
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": f"Document not found: {doc_id}",
                        "code": "DOCUMENT_NOT_FOUND",
                    }
                ),
                404,
            )

        run_async(service.delete_document(doc_id))
        return jsonify({"status": "success", "doc_id": doc_id, "message": "Document deleted"})

    except Exception as e:
        logger.exception(f"Failed to delete document {doc_id}: {str(e)}")
        return jsonify({"status": "error", "error": "Failed to delete document"}), 500


@api_bp.route("/resume/stats", methods=["GET"])
def vector_store_stats():
    """Vector store counts and backend"""
    try:
        return jsonify({"status": "success", "stats": run_async(_get_service().stats())})
    except Exception as e:
        logger.exception(f"Failed to read vector store stats: {str(e)}")
        return jsonify({"status": "error", "error": "Failed to read stats"}), 500


@api_bp.route("/resume/<doc_id>/stats", methods=["GET"])
def document_stats(doc_id):
    """Chunk and token counts for one document"""
    try:
        stats = run_async(_get_service().document_stats(doc_id))
        if not stats["chunk_count"]:
            return (
                jsonify(
                    {
                        "status": "error",
                        "error": f"Document not found: {doc_id}",
                        "code": "DOCUMENT_NOT_FOUND",
                    }
                ),
                404,
            )
        return jsonify({"status": "success", "stats": stats})

    except Exception as e:
        logger.exception(f"Failed to read document stats {doc_id}: {str(e)}")
        return jsonify({"status": "error", "error": "Failed to read document stats"}), 500

# main.py

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from constants import VERSION
from engine import ResusEngine
from models import AssessmentQuestion, Letter, Outcome, Transition
from questions import get_question, questions_for, validate_numeric
from serialization import SessionPayloadError, session_from_dict, session_to_dict, transition_to_dict

# --- 1. CONFIGURATION & LOGGING ---
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("resusgps-api")

app = FastAPI(
    title="ResusGPS API",
    version=VERSION,
    description="XABCDE emergency assessment engine. Stateless: post the session, get the next session. \n\n"
                "**WARNING**: Decision Support Tool Only. Not for autonomous clinical use.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

engine = ResusEngine()

@app.get("/health")
def health_check():
    return {"status": "active", "version": VERSION, "module": "resusgps-xabcde-engine"}

# --- 2. INPUT SCHEMA ---
class SessionEnvelope(BaseModel):
    session: Dict[str, Any] = Field(..., description="Session value as returned by a previous call")

class CreateSessionRequest(BaseModel):
    weight_kg: Optional[float] = Field(None, gt=0.3, le=250.0, description="Weight in kg")
    age: Optional[str] = Field(None, max_length=40, description="Free text, e.g. '5 years', '6 mo'")
    is_trauma: bool = Field(False)

class QuickAssessmentRequest(SessionEnvelope):
    answer: str = Field(..., pattern="^(sick|not_sick)$")

class AnswerRequest(SessionEnvelope):
    question_id: str
    answer: str = Field("", description="Option value; may be empty for numeric questions")
    numeric: Optional[float] = None
    numeric2: Optional[float] = None

class SampleRequest(SessionEnvelope):
    field: str
    value: str

class PatientInfoRequest(SessionEnvelope):
    weight_kg: Optional[float] = Field(None, gt=0.3, le=250.0)
    age: Optional[str] = Field(None, max_length=40)

class DiagnosisRequest(SessionEnvelope):
    diagnosis: str = Field(..., min_length=1)

# --- 3. RESPONSE SCHEMA ---
class TransitionResponse(BaseModel):
    session: Dict[str, Any]
    events: List[Dict[str, Any]]
    outcome: str

def _question_schema(question: AssessmentQuestion) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": question.id,
        "letter": question.letter.value,
        "text": question.text,
        "input_type": question.input_type.value,
        "options": [
            {"label": o.label, "value": o.value, "severity": o.severity.value if o.severity else None}
            for o in question.options
        ],
    }
    config = question.number_config or question.number_pair_config
    if config is not None:
        data["unit"] = config.unit
        data["min"] = config.min
        data["max"] = config.max
    if question.number_config is not None:
        data["step"] = question.number_config.step
    if question.number_pair_config is not None:
        data["labels"] = list(question.number_pair_config.labels)
    return data

def _run(operation: str, envelope: SessionEnvelope, call) -> Dict[str, Any]:
    """Decode, apply one engine operation, encode. Shared error mapping."""
    try:
        session = session_from_dict(envelope.session)
        transition: Transition = call(session)
    except SessionPayloadError as e:
        logger.warning(f"Rejected session payload for {operation}: {str(e)}")
        raise HTTPException(status_code=422, detail=str(e))
    except ValueError as e:
        logger.warning(f"Clinical Validation Error ({operation}): {str(e)}")
        raise HTTPException(status_code=422, detail=f"Clinical Validation Error: {str(e)}")
    except Exception as e:
        logger.error(f"Internal Engine Failure ({operation}): {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal Resuscitation Engine Error")

    if transition.outcome == Outcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=f"{operation}: target not found")
    if transition.outcome == Outcome.INVALID:
        raise HTTPException(status_code=422, detail=f"Clinical Validation Error: {operation} rejected the input")
    return transition_to_dict(transition)

# --- 4. ENDPOINTS ---

@app.get("/questions/{letter}")
def list_questions(letter: str):
    try:
        target = Letter(letter.upper())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown letter {letter!r}")
    return [_question_schema(q) for q in questions_for(target)]

@app.post("/sessions", response_model=TransitionResponse)
def create_session(request: CreateSessionRequest):
    logger.info(f"New session: Wt {request.weight_kg}kg, Age {request.age}, trauma={request.is_trauma}")
    session = engine.create_session(request.weight_kg, request.age, request.is_trauma)
    return transition_to_dict(Transition(session))

@app.post("/sessions/quick-assessment/start", response_model=TransitionResponse)
def start_quick_assessment(request: SessionEnvelope):
    return _run("start_quick_assessment", request, engine.start_quick_assessment)

@app.post("/sessions/quick-assessment", response_model=TransitionResponse)
def answer_quick_assessment(request: QuickAssessmentRequest):
    return _run("answer_quick_assessment", request,
                lambda s: engine.answer_quick_assessment(s, request.answer))

@app.post("/sessions/answers", response_model=TransitionResponse)
def answer_primary_survey(request: AnswerRequest):
    question = get_question(request.question_id)
    if question is None:
        raise HTTPException(status_code=404, detail=f"Unknown question {request.question_id!r}")

    def call(session):
        if question.number_config or question.number_pair_config:
            validate_numeric(question, request.numeric, request.numeric2)
        return engine.answer_primary_survey(session, question.id, request.answer, question,
                                            request.numeric, request.numeric2)
    return _run("answer_primary_survey", request, call)

@app.post("/sessions/return-to-survey", response_model=TransitionResponse)
def return_to_primary_survey(request: SessionEnvelope):
    return _run("return_to_primary_survey", request, engine.return_to_primary_survey)

@app.post("/sessions/interventions/{intervention_id}/start", response_model=TransitionResponse)
def start_intervention(intervention_id: str, request: SessionEnvelope):
    return _run("start_intervention", request, lambda s: engine.start_intervention(s, intervention_id))

@app.post("/sessions/interventions/{intervention_id}/complete", response_model=TransitionResponse)
def complete_intervention(intervention_id: str, request: SessionEnvelope):
    return _run("complete_intervention", request, lambda s: engine.complete_intervention(s, intervention_id))

@app.post("/sessions/sample", response_model=TransitionResponse)
def update_sample(request: SampleRequest):
    return _run("update_sample", request, lambda s: engine.update_sample(s, request.field, request.value))

@app.post("/sessions/patient-info", response_model=TransitionResponse)
def update_patient_info(request: PatientInfoRequest):
    return _run("update_patient_info", request,
                lambda s: engine.update_patient_info(s, request.weight_kg, request.age))

@app.post("/sessions/diagnosis", response_model=TransitionResponse)
def set_definitive_diagnosis(request: DiagnosisRequest):
    return _run("set_definitive_diagnosis", request,
                lambda s: engine.set_definitive_diagnosis(s, request.diagnosis))

@app.post("/sessions/cardiac-arrest", response_model=TransitionResponse)
def trigger_cardiac_arrest(request: SessionEnvelope):
    return _run("trigger_cardiac_arrest", request, engine.trigger_cardiac_arrest)

@app.post("/sessions/rosc", response_model=TransitionResponse)
def achieve_rosc(request: SessionEnvelope):
    return _run("achieve_rosc", request, engine.achieve_rosc)

@app.post("/sessions/alerts/{alert_id}/acknowledge", response_model=TransitionResponse)
def acknowledge_safety_alert(alert_id: str, request: SessionEnvelope):
    return _run("acknowledge_safety_alert", request, lambda s: engine.acknowledge_safety_alert(s, alert_id))

# --- 5. READ MODELS ---

def _decode(envelope: SessionEnvelope):
    try:
        return session_from_dict(envelope.session)
    except SessionPayloadError as e:
        logger.warning(f"Rejected session payload: {str(e)}")
        raise HTTPException(status_code=422, detail=str(e))

@app.post("/sessions/summary")
def session_summary(request: SessionEnvelope):
    """Active threats, pending critical steps and diagnosis suggestions in one call."""
    session = _decode(request)
    encoded = session_to_dict(session)
    threats_by_id = {t["id"]: t for t in encoded["threats"]}
    return {
        "phase": session.phase.value,
        "current_letter": session.current_letter.value,
        "current_questions": [q.id for q in engine.get_current_questions(session)],
        "active_threats": [threats_by_id[t.id] for t in engine.get_active_threats(session)],
        "pending_critical": [
            {"threat_id": t.id, "intervention_id": i.id, "action": i.action}
            for t, i in engine.get_all_pending_critical(session)
        ],
        "suggested_diagnoses": [
            {
                "diagnosis": d.diagnosis,
                "confidence": d.confidence.value,
                "supporting_findings": list(d.supporting_findings),
                "protocol": d.protocol,
                "differentials": list(d.differentials),
            }
            for d in engine.get_suggested_diagnoses(session)
        ],
    }

@app.post("/sessions/record")
def clinical_record(request: SessionEnvelope):
    session = _decode(request)
    return {"record": engine.export_clinical_record(session)}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

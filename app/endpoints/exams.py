from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.schemas.response import APIResponse
from app.utils import deps
from app.schemas.exam import Exam, ExamCreate, ExamUpdate
from app.schemas.question import Question, QuestionCreate
from app.schemas.user import UserContext
from app.services.exam import exam_service

router = APIRouter()

@router.post("/", response_model=APIResponse[Exam], status_code=status.HTTP_201_CREATED)
async def create_exam(
    *,
    db: Session = Depends(deps.get_db),
    exam_in: ExamCreate,
    context: UserContext = Depends(deps.require_operator)
):
    exam = exam_service.create_exam(db, context, exam_in)
    return APIResponse(message="Exam created successfully", data=exam)


@router.get("/{exam_id}", response_model=APIResponse[Exam])
async def get_exam(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    context: UserContext = Depends(deps.require_grader)
):
    exam = exam_service.get_exam(db, context, exam_id)
    return APIResponse(message="Exam retrieved successfully", data=exam)


@router.put("/{exam_id}", response_model=APIResponse[Exam])
async def update_exam(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    exam_in: ExamUpdate,
    context: UserContext = Depends(deps.require_operator)
):
    exam = exam_service.update_exam(db, context, exam_id, exam_in)
    return APIResponse(message="Exam updated successfully", data=exam)


@router.post("/{exam_id}/questions", response_model=APIResponse[Question], status_code=status.HTTP_201_CREATED)
async def add_question(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    question_in: QuestionCreate,
    context: UserContext = Depends(deps.require_operator)
):
    question = exam_service.add_question(db, context, exam_id, question_in)
    return APIResponse(message="Question added successfully", data=question)


@router.get("/{exam_id}/questions", response_model=APIResponse[List[Question]])
async def list_questions(
    *,
    db: Session = Depends(deps.get_db),
    exam_id: int,
    context: UserContext = Depends(deps.require_grader)
):
    questions = exam_service.list_questions(db, context, exam_id)
    return APIResponse(message="Questions retrieved successfully", data=questions)

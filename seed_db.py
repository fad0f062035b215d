"""One-time DB setup: create tables and seed a demo course with one exam."""
from cbt.core.security import create_access_token
from cbt.db.models import Course, Exam, Question, QuestionTypeEnum, RoleEnum, User
from cbt.db.session import Base, get_engine, get_session_factory

# 1. Create all tables
engine = get_engine()
Base.metadata.create_all(bind=engine)
print("✅ All tables created")

session_factory = get_session_factory()
with session_factory() as db:
    # 2. Instructor who owns the demo course
    instructor = db.query(User).filter(User.email == "instructor@example.com").first()
    if not instructor:
        instructor = User(
            email="instructor@example.com",
            full_name="Demo Instructor",
            role=RoleEnum.INSTRUCTOR,
        )
        db.add(instructor)
        db.commit()
        db.refresh(instructor)
        print("✅ Created instructor")
    else:
        print("  Instructor already exists")

    # 3. Test student
    student = db.query(User).filter(User.email == "student@example.com").first()
    if not student:
        student = User(
            email="student@example.com",
            full_name="Student User",
            role=RoleEnum.STUDENT,
        )
        db.add(student)
        db.commit()
        db.refresh(student)
        print("✅ Created student")
    else:
        print("  Student already exists")

    # 4. Demo course + published exam
    exam = db.query(Exam).filter(Exam.title == "Demo Quiz").first()
    if not exam:
        course = Course(title="Introduction to Computing", owner_id=instructor.id)
        db.add(course)
        db.flush()
        exam = Exam(
            course_id=course.id,
            title="Demo Quiz",
            duration_minutes=15,
            max_score=30,
            passing_score=20,
            is_published=True,
        )
        db.add(exam)
        db.flush()
        db.add_all(
            [
                Question(
                    exam_id=exam.id,
                    sort_order=1,
                    question_type=QuestionTypeEnum.MULTIPLE_CHOICE,
                    question_text="Which of these is an input device?",
                    options=[
                        {"id": "a", "text": "Monitor"},
                        {"id": "b", "text": "Keyboard"},
                        {"id": "c", "text": "Printer"},
                    ],
                    correct_answer="b",
                    points=10,
                ),
                Question(
                    exam_id=exam.id,
                    sort_order=2,
                    question_type=QuestionTypeEnum.TRUE_FALSE,
                    question_text="RAM keeps its contents when the power is off.",
                    options=[
                        {"id": "true", "text": "True"},
                        {"id": "false", "text": "False"},
                    ],
                    correct_answer="false",
                    points=10,
                ),
                Question(
                    exam_id=exam.id,
                    sort_order=3,
                    question_type=QuestionTypeEnum.ESSAY,
                    question_text="Explain the difference between hardware and software.",
                    points=10,
                ),
            ]
        )
        db.commit()
        print(f"✅ Created demo exam (id={exam.id})")
    else:
        print("  Demo exam already exists")

    token = create_access_token(data={"sub": str(student.id), "role": "student"})

print("\n🎉 Database is ready to use!")
print(f"   Student token: {token}")

from program_builder.models.program import (
    ProgramTemplate,
    ProgramTemplateDay,
    DayModule,
    ModuleExercise,
    ExercisePrescription,
)

__all__ = [
    "ProgramTemplate", "ProgramTemplateDay",
    "DayModule",
    "ModuleExercise", "ExercisePrescription",
]

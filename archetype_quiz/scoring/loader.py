import yaml
from typing import Dict, Any

from archetype_quiz.scoring.models import QuizDefinition


class DefinitionValidationError(ValueError):
    """Custom exception for quiz definition errors not covered by Pydantic."""
    pass


def load_quiz_definition_data(data: Dict[str, Any]) -> QuizDefinition:
    """
    Validates the raw dictionary data against the QuizDefinition model
    and performs additional cross-reference checks.
    """
    # Schema problems surface as pydantic.ValidationError
    definition = QuizDefinition.model_validate(data)

    question_ids = set()
    for question in definition.questions:
        if question.id in question_ids:
            raise DefinitionValidationError(f"Duplicate question ID found: {question.id}")
        question_ids.add(question.id)

    archetype_names = set()
    for archetype in definition.archetypes:
        if archetype.name in archetype_names:
            raise DefinitionValidationError(f"Duplicate archetype name found: {archetype.name}")
        archetype_names.add(archetype.name)

        unknown_questions = set(archetype.weights) - question_ids
        if unknown_questions:
            raise DefinitionValidationError(
                f"Archetype '{archetype.name}' has weights for unknown questions: {sorted(unknown_questions)}"
            )

    for question in definition.questions:
        for option in question.options:
            if option.archetype not in archetype_names:
                raise DefinitionValidationError(
                    f"Question {question.id} option '{option.text}' references unknown archetype '{option.archetype}'"
                )

    return definition


def load_quiz_definition_from_file(file_path: str) -> QuizDefinition:
    """
    Loads a quiz definition from a YAML file, validates it,
    and returns a QuizDefinition object.
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise DefinitionValidationError(f"File not found: {file_path}")
    except yaml.YAMLError as e:
        raise DefinitionValidationError(f"Error parsing YAML file {file_path}: {e}")

    if data is None:
        raise DefinitionValidationError(f"YAML file is empty or invalid: {file_path}")

    return load_quiz_definition_data(data)

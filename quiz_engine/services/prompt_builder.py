import json

class PromptBuilder:
	def build(self, template_text: str, *, topic: str, difficulty: str, question_count: int) -> str:
		context = {
			"meta": {"topic": topic, "difficulty": difficulty},
			"format": {
				"num_questions": question_count,
				"question_shape": {
					"id": "string",
					"question": "string",
					"options": [{"id": "string", "text": "string"}],
					"correctOptionId": "string",
					"explanation": "string"
				}
			}
		}
		instructions = (
			"Use the CONTEXT JSON below to guide generation. "
			"You are a generator of multiple-choice questions for an online course. Output must be strict JSON only. "
			"Every question must be about meta.topic and pitched at meta.difficulty (easy, intermediate or advanced). "
			"Each question has exactly four options and exactly one correct option; correctOptionId must be the id of that option. "
			"Do not repeat a question or paraphrase an earlier one. "
			"Return only the required JSON schema."
		)
		return template_text + "\n" + instructions + "\n" + json.dumps(context)

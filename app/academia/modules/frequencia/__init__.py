"""
Frequência module: aulas, chamada (roll call) and attendance alerts.

- Aulas start as RASCUNHO; publishing a chamada recomputes totals and runs the
  alert rules; FINALIZADA aulas are locked.
- One presença row per (aula, aluno).
- Alerts notify the aluno and every admin.
"""

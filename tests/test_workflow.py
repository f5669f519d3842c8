#!/usr/bin/env python3
"""
Tests for workflow.py: create / refine / save / fork against a real session
store, a mocked generator and a repository-backed client.

Run with:
    python -m pytest tests/test_workflow.py
"""
import os
import sys
import threading
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fake_firestore import FakeFirestore

from attachments import FileAttachment
from errors import GenerationError, PersistenceError, ValidationError, WorkflowBusyError
from game_repository import GameRepository
from session_store import SessionGameStore
from workflow import ChatMessage, GenerationWorkflow, WorkflowState

H1 = '<!DOCTYPE html><html>H1</html>'
H2 = '<!DOCTYPE html><html>H2</html>'


class ImmediateExecutor:

    def submit(self, fn, *args, **kwargs):
        fn(*args, **kwargs)

    def shutdown(self, wait=True):
        pass


class WorkflowTestCase(unittest.TestCase):

    def setUp(self):
        self.repo = GameRepository(FakeFirestore())
        self.client = MagicMock()
        self.client.save_game.side_effect = lambda payload: self.repo.save(payload, 'alice')
        self.client.fork_game.side_effect = lambda game_id, name=None: self.repo.fork(game_id, 'alice', name)

        self.generator = MagicMock()
        self.generator.generate.return_value = H1
        self.generator.describe.return_value = 'Place fractions on a number line.'
        self.generator.title.return_value = 'Fraction Line'

        self.settings = MagicMock()
        self.settings.instruction_for.side_effect = lambda kind: f"{kind} instruction"

        self.store = SessionGameStore(self.client, executor=ImmediateExecutor())
        self.store.user_id = 'alice'
        self.states = []
        self.workflow = GenerationWorkflow(self.generator, self.store, self.client, self.settings,
                                           listener=self.states.append)


class TestCreate(WorkflowTestCase):

    def test_create_then_save_scenario(self):
        game = self.workflow.create('Fraction number line quiz')
        self.assertEqual(self.workflow.state, WorkflowState.GENERATED_UNSAVED)
        self.assertEqual(self.store.active_game['id'], game['id'])
        self.assertEqual((game['grade'], game['subject']), (0, ''))
        self.assertEqual(game['htmlContent'], H1)
        self.assertEqual(game['title'], 'Fraction Line')
        self.generator.generate.assert_called_once_with('Fraction number line quiz', [], 'fast', 'main instruction')

        self.workflow.update_details(grade=4, subject='Math')
        saved = self.workflow.save()
        self.assertEqual(self.workflow.state, WorkflowState.SAVED)
        self.assertTrue(saved['isSavedToDB'])
        self.assertFalse(saved['isPublic'])
        self.assertEqual(saved['likes'], 0)
        self.assertTrue(self.store.get_game(game['id'])['isSavedToDB'])
        self.assertEqual(self.repo.find(game['id'], 'alice')['grade'], 4)

    def test_empty_prompt_without_attachment(self):
        with self.assertRaises(ValidationError):
            self.workflow.create('   ')
        blocked = FileAttachment('tool.exe', 'application/octet-stream', b'MZ')
        with self.assertRaises(ValidationError):
            self.workflow.create('', [blocked])
        self.generator.generate.assert_not_called()
        self.assertEqual(self.workflow.state, WorkflowState.IDLE)
        self.assertEqual(len(self.workflow.warnings), 1)

    def test_attachment_only_create(self):
        image = FileAttachment('worksheet.png', 'image/png', b'png')
        self.workflow.create('', [image], mode='thinking')
        self.generator.generate.assert_called_once_with('', [image], 'thinking', 'main instruction')
        self.generator.title.assert_called_once_with('worksheet.png')

    def test_generation_failure_returns_to_idle(self):
        self.generator.generate.side_effect = GenerationError('The game could not be generated. Please try again.')
        games_before = list(self.store.games)
        with self.assertRaises(GenerationError):
            self.workflow.create('Fraction number line quiz')
        self.assertEqual(self.workflow.state, WorkflowState.IDLE)
        self.assertIn(WorkflowState.ERROR, self.states)
        self.assertIn('could not be generated', self.workflow.last_error)
        self.assertEqual(self.store.games, games_before)

    def test_unexpected_generator_error_returns_to_idle(self):
        self.generator.generate.side_effect = KeyError('htmlContent')
        games_before = list(self.store.games)
        with self.assertRaises(GenerationError) as ctx:
            self.workflow.create('Fraction number line quiz')
        self.assertIsInstance(ctx.exception.__cause__, KeyError)
        self.assertEqual(self.workflow.state, WorkflowState.IDLE)
        self.assertIn(WorkflowState.ERROR, self.states)
        self.assertIsNotNone(self.workflow.last_error)
        self.assertEqual(self.store.games, games_before)

        self.generator.generate.side_effect = None
        self.workflow.create('Fraction number line quiz')
        self.assertEqual(self.workflow.state, WorkflowState.GENERATED_UNSAVED)


class TestSave(WorkflowTestCase):

    def setUp(self):
        super().setUp()
        self.game = self.workflow.create('Fraction number line quiz')

    def test_save_gate_blocks_unset_grade(self):
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.save()
        self.assertEqual(ctx.exception.field, 'grade')
        self.client.save_game.assert_not_called()
        self.assertEqual(self.workflow.state, WorkflowState.GENERATED_UNSAVED)
        self.assertEqual(self.workflow.last_error, ctx.exception.message)

    def test_save_gate_blocks_unset_subject(self):
        self.workflow.update_details(grade=4)
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.save()
        self.assertEqual(ctx.exception.field, 'subject')
        self.client.save_game.assert_not_called()

    def test_save_failure_keeps_draft(self):
        self.workflow.update_details(grade=4, subject='Math')
        self.client.save_game.side_effect = PersistenceError('The change could not be saved. Please try again.')
        with self.assertRaises(PersistenceError):
            self.workflow.save()
        self.assertEqual(self.workflow.state, WorkflowState.GENERATED_UNSAVED)
        self.assertFalse(self.store.get_game(self.game['id'])['isSavedToDB'])
        self.assertIsNotNone(self.workflow.last_error)

    def test_save_passes_creator_name(self):
        self.workflow.update_details(grade=4, subject='Math')
        saved = self.workflow.save(creator_name='Ms. Frizzle')
        self.assertEqual(saved['creatorName'], 'Ms. Frizzle')

    def test_unexpected_client_error_keeps_draft(self):
        self.workflow.update_details(grade=4, subject='Math')
        self.client.save_game.side_effect = RuntimeError('socket closed')
        with self.assertRaises(PersistenceError):
            self.workflow.save()
        self.assertEqual(self.workflow.state, WorkflowState.GENERATED_UNSAVED)
        self.assertFalse(self.store.get_game(self.game['id'])['isSavedToDB'])

    def test_resave_own_stored_game(self):
        self.workflow.update_details(grade=4, subject='Math')
        self.workflow.save()
        self.workflow.update_details(title='Fraction Line 2')
        self.assertEqual(self.workflow.save()['title'], 'Fraction Line 2')
        self.assertEqual(self.client.save_game.call_count, 2)


class TestSaveOtherUsersGame(WorkflowTestCase):

    def setUp(self):
        super().setUp()
        self.theirs = self.repo.save({
            'id': 'shared', 'title': 'Volcanoes', 'description': 'd', 'grade': 5, 'subject': 'Science',
            'htmlContent': H1, 'isPublic': True,
        }, 'bob')
        self.workflow.open(self.theirs)

    def test_save_is_rejected_without_writing(self):
        self.generator.refine.return_value = H2
        self.workflow.refine('add lava')
        with self.assertRaises(ValidationError) as ctx:
            self.workflow.save()
        self.assertIn('Remix', ctx.exception.message)
        self.assertEqual(self.workflow.last_error, ctx.exception.message)
        self.client.save_game.assert_not_called()
        self.assertEqual(self.repo.find('shared')['htmlContent'], H1)
        self.assertEqual(self.repo.find_many(['shared'], 'alice')['shared']['userId'], 'bob')

    def test_signed_out_viewer_cannot_save_stored_game(self):
        self.store.user_id = None
        with self.assertRaises(ValidationError):
            self.workflow.save()
        self.client.save_game.assert_not_called()

    def test_remix_then_save_writes_a_copy(self):
        fork = self.workflow.fork('shared')
        self.workflow.update_details(title='My volcanoes')
        saved = self.workflow.save()
        self.assertEqual((saved['id'], saved['userId']), (fork['id'], 'alice'))
        self.assertEqual(self.repo.find('shared')['title'], 'Volcanoes')


class TestRefine(WorkflowTestCase):

    def setUp(self):
        super().setUp()
        self.game = self.workflow.create('Fraction number line quiz')

    def test_refine_scenario(self):
        self.generator.refine.return_value = H2
        self.workflow.refine('add a timer')
        self.generator.refine.assert_called_once_with('add a timer', H1, [], 'fast', 'refinement instruction')
        self.assertEqual(self.store.active_game['htmlContent'], H2)
        self.assertEqual(self.store.get_game(self.game['id'])['htmlContent'], H2)
        self.assertEqual([m.sender for m in self.workflow.transcript], ['user', 'ai'])
        self.assertEqual(self.workflow.transcript[0], ChatMessage('user', 'add a timer'))

    def test_refine_uses_latest_content(self):
        self.generator.refine.side_effect = [H2, '<html>H3</html>']
        self.workflow.refine('add a timer')
        self.workflow.refine('make it blue')
        self.assertEqual(self.generator.refine.call_args[0][1], H2)

    def test_refine_failure_appends_system_message(self):
        self.generator.refine.side_effect = GenerationError('The game could not be updated. Please try again.')
        with self.assertRaises(GenerationError):
            self.workflow.refine('add a timer')
        self.assertEqual(self.store.active_game['htmlContent'], H1)
        self.assertEqual([m.sender for m in self.workflow.transcript], ['user', 'system'])
        self.assertEqual(self.workflow.state, WorkflowState.GENERATED_UNSAVED)

    def test_refine_needs_open_game(self):
        self.workflow.close()
        with self.assertRaises(ValidationError):
            self.workflow.refine('add a timer')

    def test_refine_after_save_marks_unsaved(self):
        self.workflow.update_details(grade=4, subject='Math')
        self.workflow.save()
        self.generator.refine.return_value = H2
        self.workflow.refine('add a timer')
        self.assertEqual(self.workflow.state, WorkflowState.GENERATED_UNSAVED)


class TestSingleFlight(WorkflowTestCase):

    def test_second_operation_while_generating_is_rejected(self):
        started, release = threading.Event(), threading.Event()

        def slow_generate(*args):
            started.set()
            release.wait(5)
            return H1

        self.generator.generate.side_effect = slow_generate
        worker = threading.Thread(target=self.workflow.create, args=('Fraction number line quiz',))
        worker.start()
        try:
            self.assertTrue(started.wait(5))
            with self.assertRaises(WorkflowBusyError):
                self.workflow.create('Another game about decimals')
            with self.assertRaises(WorkflowBusyError):
                self.workflow.save()
        finally:
            release.set()
            worker.join(5)
        self.assertEqual(self.workflow.state, WorkflowState.GENERATED_UNSAVED)
        self.assertEqual(self.generator.generate.call_count, 1)


class TestForkAndViewer(WorkflowTestCase):

    def test_fork_becomes_active_and_editable(self):
        source = self.repo.save({
            'id': 'src', 'title': 'Volcanoes', 'description': 'd', 'grade': 5, 'subject': 'Science',
            'htmlContent': H1, 'isPublic': True,
        }, 'bob')
        fork = self.workflow.fork('src', 'Alice')
        self.assertEqual(self.workflow.state, WorkflowState.SAVED)
        self.assertEqual(self.store.active_game['id'], fork['id'])
        self.assertEqual(fork['forkedFrom'], 'src')

        self.generator.refine.return_value = H2
        self.workflow.refine('add lava')
        self.assertEqual(self.store.active_game['htmlContent'], H2)
        self.assertEqual(self.repo.find('src')['htmlContent'], source['htmlContent'])

    def test_open_and_close_reset_transcript(self):
        self.workflow.create('Fraction number line quiz')
        self.generator.refine.return_value = H2
        self.workflow.refine('add a timer')
        stored = self.repo.save({
            'id': 'other', 'title': 'T', 'description': 'd', 'grade': 2, 'subject': 'Art', 'htmlContent': H1,
        }, 'alice')
        self.workflow.open(stored)
        self.assertEqual(self.workflow.transcript, [])
        self.assertEqual(self.workflow.state, WorkflowState.SAVED)
        self.client.increment_play_count.assert_called_once_with('other')

        self.workflow.close()
        self.assertEqual(self.workflow.state, WorkflowState.IDLE)
        self.assertIsNone(self.store.active_game)


if __name__ == '__main__':
    unittest.main()

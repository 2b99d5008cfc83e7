from entraAudit.analyzer.bulk import create_role_assignments, remove_users


def test_role_assignments_continue_after_failure(directory):
    directory.fail_writes.add('bad-principal')
    assignments = [
        {'principalId': 'u1', 'roleDefinitionId': 'role-ga'},
        {'principalId': 'bad-principal', 'roleDefinitionId': 'role-ga'},
        {'principalId': 'u2'},
        {'principalId': 'u3', 'roleDefinitionId': 'role-ur', 'directoryScopeId': '/administrativeUnits/au1'},
    ]

    summary = create_role_assignments(directory, assignments)

    assert summary.succeeded == 2
    assert summary.failed == 2
    assert directory.created == [('u1', 'role-ga', '/'), ('u3', 'role-ur', '/administrativeUnits/au1')]
    assert summary.failures[0].error == 'HTTP 400: Invalid principal'
    assert 'roleDefinitionId' in summary.failures[1].error


def test_remove_users_tallies(directory):
    directory.fail_writes.add('gone')
    messages = []

    summary = remove_users(directory, ['g-a', 'gone', 'g-b'], progress_callback=lambda p, m: messages.append(m))

    assert directory.deleted == ['g-a', 'g-b']
    assert [r.success for r in summary.results] == [True, False, True]
    assert summary.failures[0].record == 'gone'
    assert messages == ['✓ 2 user(s) succeeded, 1 failed']


def test_empty_batch(directory):
    summary = remove_users(directory, [])
    assert summary.succeeded == 0
    assert summary.failed == 0


def test_malformed_record_does_not_stop_batch(directory):
    assignments = [
        {'principalId': 'u1', 'roleDefinitionId': 'role-ga'},
        None,
        {'principalId': 'u3', 'roleDefinitionId': 'role-ga'},
    ]

    summary = create_role_assignments(directory, assignments)

    assert directory.created == [('u1', 'role-ga', '/'), ('u3', 'role-ga', '/')]
    assert [r.success for r in summary.results] == [True, False, True]
    assert 'NoneType' in summary.failures[0].error


def test_unexpected_client_error_does_not_stop_batch(directory):
    def delete_user(user_id):
        if user_id == 'b':
            raise RuntimeError('unexpected')
        directory.deleted.append(user_id)

    directory.delete_user = delete_user

    summary = remove_users(directory, ['a', 'b', 'c'])

    assert directory.deleted == ['a', 'c']
    assert summary.succeeded == 2
    assert summary.failures[0].record == 'b'
    assert summary.failures[0].error == 'RuntimeError: unexpected'
